"""
Server-side model of the rich-text editor document.

A document is the JSON tree the editor saves:

    {"type": "doc", "content": [<block>, ...]}

Custom blocks on top of the standard ones:
    image         attrs.src
    imageGallery  attrs.images (ordered URLs), attrs.layout ("grid" | "swiper")
    columns       attrs.columns (2 or 3), content: one or more blocks

Positions are paths: tuples of child indices starting at the doc root, so
(2,) is the third top-level block and (1, 0) the first block inside the
second one. Every tree operation here is pure and returns a new document.
"""
import copy
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Path = Tuple[int, ...]

IMAGE = "image"
GALLERY = "imageGallery"
COLUMNS = "columns"

GALLERY_LAYOUTS = ("grid", "swiper")
DEFAULT_GALLERY_LAYOUT = "grid"
COLUMN_COUNTS = (2, 3)
DEFAULT_COLUMNS = 2

BLOCK_TYPES = frozenset({
    "paragraph",
    "heading",
    "blockquote",
    "bulletList",
    "orderedList",
    "listItem",
    "codeBlock",
    "horizontalRule",
    IMAGE,
    GALLERY,
    COLUMNS,
})
INLINE_TYPES = frozenset({"text", "hardBreak"})


class DocumentError(ValueError):
    """Raised for malformed documents and invalid positions."""


# --- validation -------------------------------------------------------------

def validate_document(doc: Any) -> None:
    """
    Structural validation of an editor document.

    Raises:
        DocumentError: Describing the first problem found, with its path
    """
    if not isinstance(doc, dict) or doc.get("type") != "doc":
        raise DocumentError("Document root must be an object with type 'doc'")

    content = doc.get("content", [])
    if not isinstance(content, list):
        raise DocumentError("Document content must be a list")

    for index, child in enumerate(content):
        _validate_node(child, (index,))


def _validate_node(node: Any, path: Path) -> None:
    if not isinstance(node, dict):
        raise DocumentError(f"Node at {list(path)} must be an object")

    node_type = node.get("type")
    if node_type not in BLOCK_TYPES and node_type not in INLINE_TYPES:
        raise DocumentError(f"Unknown node type {node_type!r} at {list(path)}")

    attrs = node.get("attrs", {})
    if not isinstance(attrs, dict):
        raise DocumentError(f"attrs of {node_type} at {list(path)} must be an object")

    if node_type == "text":
        if not isinstance(node.get("text"), str) or not node["text"]:
            raise DocumentError(f"Text node at {list(path)} needs non-empty text")

    elif node_type == IMAGE:
        src = attrs.get("src")
        if not isinstance(src, str) or not src:
            raise DocumentError(f"Image at {list(path)} needs attrs.src")

    elif node_type == GALLERY:
        images = attrs.get("images", [])
        if not isinstance(images, list) or not all(isinstance(url, str) and url for url in images):
            raise DocumentError(f"Gallery at {list(path)} needs attrs.images as a list of URLs")
        layout = attrs.get("layout", DEFAULT_GALLERY_LAYOUT)
        if layout not in GALLERY_LAYOUTS:
            raise DocumentError(f"Gallery at {list(path)} has invalid layout {layout!r}")

    elif node_type == COLUMNS:
        columns = attrs.get("columns", DEFAULT_COLUMNS)
        if isinstance(columns, bool) or columns not in COLUMN_COUNTS:
            raise DocumentError(f"Columns at {list(path)} need attrs.columns of 2 or 3")
        if not node.get("content"):
            raise DocumentError(f"Columns at {list(path)} need at least one block")

    content = node.get("content", [])
    if not isinstance(content, list):
        raise DocumentError(f"content of {node_type} at {list(path)} must be a list")
    for index, child in enumerate(content):
        _validate_node(child, path + (index,))


# --- traversal --------------------------------------------------------------

def iter_nodes(doc: Dict[str, Any]) -> Iterator[Tuple[Path, Dict[str, Any]]]:
    """Depth-first (path, node) pairs in document order."""
    stack: List[Tuple[Path, Dict[str, Any]]] = [
        ((i,), child) for i, child in reversed(list(enumerate(doc.get("content", []))))
    ]
    while stack:
        path, node = stack.pop()
        yield path, node
        children = node.get("content") or []
        for i in reversed(range(len(children))):
            stack.append((path + (i,), children[i]))


def iter_image_urls(doc: Dict[str, Any]) -> Iterator[str]:
    """Every image URL referenced by image and gallery nodes, in document order."""
    for _, node in iter_nodes(doc):
        attrs = node.get("attrs") or {}
        if node.get("type") == IMAGE and attrs.get("src"):
            yield attrs["src"]
        elif node.get("type") == GALLERY:
            for url in attrs.get("images") or []:
                yield url


def extract_text(content: Any) -> str:
    """Plain text of a document or node: text nodes joined by spaces; a string passes through."""
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if not isinstance(content, dict):
        return ""
    parts = []
    if content.get("type") == "text" and content.get("text"):
        parts.append(content["text"])
    for child in content.get("content") or []:
        text = extract_text(child)
        if text:
            parts.append(text)
    return " ".join(parts).strip()


def replace_image_urls(doc: Dict[str, Any], mapping: Mapping[str, str]) -> Dict[str, Any]:
    """Copy of doc with image and gallery URLs rewritten through mapping."""
    new_doc = copy.deepcopy(doc)
    for _, node in iter_nodes(new_doc):
        attrs = node.get("attrs")
        if not attrs:
            continue
        if node.get("type") == IMAGE and attrs.get("src") in mapping:
            attrs["src"] = mapping[attrs["src"]]
        elif node.get("type") == GALLERY and attrs.get("images"):
            attrs["images"] = [mapping.get(url, url) for url in attrs["images"]]
    return new_doc


# --- node access ------------------------------------------------------------

def _as_path(path: Sequence[int]) -> Path:
    path = tuple(path)
    if not path or not all(isinstance(i, int) and not isinstance(i, bool) for i in path):
        raise DocumentError(f"Invalid position {list(path)}")
    return path


def _locate(doc: Dict[str, Any], path: Path) -> Tuple[List[Dict[str, Any]], int]:
    """Sibling list holding the node at path, and its index in that list."""
    siblings = doc.get("content")
    for depth, index in enumerate(path):
        if not isinstance(siblings, list) or not 0 <= index < len(siblings):
            raise DocumentError(f"No node at position {list(path)}")
        if depth == len(path) - 1:
            return siblings, index
        siblings = siblings[index].get("content")
    raise DocumentError(f"No node at position {list(path)}")


def get_node(doc: Dict[str, Any], path: Sequence[int]) -> Dict[str, Any]:
    siblings, index = _locate(doc, _as_path(path))
    return siblings[index]


def find_node(doc: Dict[str, Any], path: Sequence[int]) -> Optional[Dict[str, Any]]:
    """Like get_node, but None for positions that no longer exist."""
    try:
        return get_node(doc, path)
    except DocumentError:
        return None


def replace_node(doc: Dict[str, Any], path: Sequence[int], node: Dict[str, Any]) -> Dict[str, Any]:
    new_doc = copy.deepcopy(doc)
    siblings, index = _locate(new_doc, _as_path(path))
    siblings[index] = node
    return new_doc


def delete_node(doc: Dict[str, Any], path: Sequence[int]) -> Dict[str, Any]:
    new_doc = copy.deepcopy(doc)
    siblings, index = _locate(new_doc, _as_path(path))
    del siblings[index]
    return new_doc


def insert_node(doc: Dict[str, Any], path: Sequence[int], node: Dict[str, Any]) -> Dict[str, Any]:
    """Insert node so that it ends up at path; the last index may equal the sibling count."""
    path = _as_path(path)
    new_doc = copy.deepcopy(doc)
    if len(path) == 1:
        siblings = new_doc.setdefault("content", [])
    else:
        parent_siblings, parent_index = _locate(new_doc, path[:-1])
        siblings = parent_siblings[parent_index].setdefault("content", [])
    if not 0 <= path[-1] <= len(siblings):
        raise DocumentError(f"Cannot insert at position {list(path)}")
    siblings.insert(path[-1], node)
    return new_doc


# --- node builders ----------------------------------------------------------

def image_node(src: str) -> Dict[str, Any]:
    return {"type": IMAGE, "attrs": {"src": src}}


def gallery_node(images: Sequence[str], layout: str = DEFAULT_GALLERY_LAYOUT) -> Dict[str, Any]:
    if layout not in GALLERY_LAYOUTS:
        raise DocumentError(f"Invalid gallery layout {layout!r}")
    return {"type": GALLERY, "attrs": {"images": list(images), "layout": layout}}


def make_columns(columns: int = DEFAULT_COLUMNS) -> Dict[str, Any]:
    """A new columns block with one empty paragraph per column."""
    if columns not in COLUMN_COUNTS:
        raise DocumentError("A columns block has 2 or 3 columns")
    return {
        "type": COLUMNS,
        "attrs": {"columns": columns},
        "content": [{"type": "paragraph"} for _ in range(columns)],
    }


def set_columns(doc: Dict[str, Any], path: Sequence[int], columns: int) -> Dict[str, Any]:
    """Switch an existing columns block between 2 and 3 columns; its blocks are kept."""
    if columns not in COLUMN_COUNTS:
        raise DocumentError("A columns block has 2 or 3 columns")
    node = _require(doc, path, COLUMNS)
    updated = copy.deepcopy(node)
    updated.setdefault("attrs", {})["columns"] = columns
    return replace_node(doc, path, updated)


def _gallery_images(node: Dict[str, Any]) -> List[str]:
    return list((node.get("attrs") or {}).get("images") or [])


def _gallery_layout(node: Dict[str, Any]) -> str:
    return (node.get("attrs") or {}).get("layout") or DEFAULT_GALLERY_LAYOUT


def _require(doc: Dict[str, Any], path: Sequence[int], *types: str) -> Dict[str, Any]:
    node = get_node(doc, path)
    if node.get("type") not in types:
        raise DocumentError(f"Node at {list(path)} is {node.get('type')!r}, expected {' or '.join(types)}")
    return node


# --- gallery surgery --------------------------------------------------------

def merge_images(doc: Dict[str, Any], selected: Sequence[int], clicked: Sequence[int]) -> Dict[str, Any]:
    """
    Merge the selected node with the clicked one into a gallery at the earlier position.

    image + image      -> new grid gallery [selected, clicked]
    gallery + image    -> the earlier gallery gets the later image appended
    image + gallery    -> new gallery with the earlier image prepended, gallery layout kept

    At least one side must be a plain image.
    """
    selected, clicked = _as_path(selected), _as_path(clicked)
    if selected == clicked:
        raise DocumentError("Cannot merge a node with itself")

    first_path, second_path = sorted((selected, clicked))
    first = _require(doc, first_path, IMAGE, GALLERY)
    second = _require(doc, second_path, IMAGE, GALLERY)

    if first["type"] == GALLERY and second["type"] == GALLERY:
        raise DocumentError("Two galleries cannot be merged")

    if first["type"] == GALLERY:
        merged = copy.deepcopy(first)
        merged.setdefault("attrs", {})["images"] = _gallery_images(first) + [second["attrs"]["src"]]
    elif second["type"] == GALLERY:
        merged = gallery_node([first["attrs"]["src"]] + _gallery_images(second), _gallery_layout(second))
    else:
        selected_src = get_node(doc, selected)["attrs"]["src"]
        clicked_src = get_node(doc, clicked)["attrs"]["src"]
        merged = gallery_node([selected_src, clicked_src])

    # Replacing keeps sibling counts, so second_path is still valid afterwards
    new_doc = replace_node(doc, first_path, merged)
    return delete_node(new_doc, second_path)


def add_image_to_gallery(doc: Dict[str, Any], gallery_path: Sequence[int], image_path: Sequence[int]) -> Dict[str, Any]:
    """Append a loose image to a gallery and remove the image block."""
    gallery_path, image_path = _as_path(gallery_path), _as_path(image_path)
    gallery = _require(doc, gallery_path, GALLERY)
    image = _require(doc, image_path, IMAGE)

    updated = copy.deepcopy(gallery)
    updated.setdefault("attrs", {})["images"] = _gallery_images(gallery) + [image["attrs"]["src"]]
    new_doc = replace_node(doc, gallery_path, updated)
    return delete_node(new_doc, image_path)


def _shrink_gallery(doc: Dict[str, Any], path: Path, index: int) -> Tuple[Dict[str, Any], str, int]:
    """
    Remove images[index] from the gallery at path.

    Returns:
        (new document, removed URL, number of blocks now occupying path: 0 or 1)
    """
    gallery = _require(doc, path, GALLERY)
    images = _gallery_images(gallery)
    if not 0 <= index < len(images):
        raise DocumentError(f"Gallery at {list(path)} has no image {index}")

    removed = images.pop(index)
    if not images:
        return delete_node(doc, path), removed, 0
    if len(images) == 1:
        return replace_node(doc, path, image_node(images[0])), removed, 1

    updated = copy.deepcopy(gallery)
    updated["attrs"]["images"] = images
    return replace_node(doc, path, updated), removed, 1


def remove_gallery_image(doc: Dict[str, Any], path: Sequence[int], index: int) -> Dict[str, Any]:
    """
    Drop one image from a gallery.
    An emptied gallery is deleted; a gallery left with one image becomes an image block.
    """
    new_doc, _, _ = _shrink_gallery(doc, _as_path(path), index)
    return new_doc


def extract_gallery_image(doc: Dict[str, Any], path: Sequence[int], index: int) -> Dict[str, Any]:
    """Move one image out of a gallery into its own block right after it."""
    path = _as_path(path)
    new_doc, removed, remaining = _shrink_gallery(doc, path, index)
    insert_at = path[:-1] + (path[-1] + remaining,)
    return insert_node(new_doc, insert_at, image_node(removed))


def move_gallery_image(doc: Dict[str, Any], path: Sequence[int], old_index: int, new_index: int) -> Dict[str, Any]:
    """Reorder images inside a gallery."""
    path = _as_path(path)
    gallery = _require(doc, path, GALLERY)
    images = _gallery_images(gallery)
    if not (0 <= old_index < len(images) and 0 <= new_index < len(images)):
        raise DocumentError(f"Gallery at {list(path)} has no image {old_index} or {new_index}")

    images.insert(new_index, images.pop(old_index))
    updated = copy.deepcopy(gallery)
    updated["attrs"]["images"] = images
    return replace_node(doc, path, updated)


def toggle_gallery_layout(doc: Dict[str, Any], path: Sequence[int]) -> Dict[str, Any]:
    gallery = _require(doc, path, GALLERY)
    updated = copy.deepcopy(gallery)
    updated.setdefault("attrs", {})["layout"] = "swiper" if _gallery_layout(gallery) == "grid" else "grid"
    return replace_node(doc, path, updated)


# --- click-to-merge selection -----------------------------------------------

class ImageSelection:
    """
    Selection state for the click-to-merge interaction of one editor instance.

    First click on an image or gallery arms it. Clicking the same node again
    disarms. Clicking another node merges the two and clears the selection;
    an armed image clicked into a gallery is appended to that gallery. If the
    armed position no longer holds an image or gallery (the document changed
    underneath), or both nodes are galleries, the new click simply becomes
    the selection.
    """

    def __init__(self):
        self.path: Optional[Path] = None

    @property
    def armed(self) -> bool:
        return self.path is not None

    def clear(self) -> None:
        self.path = None

    def click(self, doc: Dict[str, Any], path: Sequence[int]) -> Tuple[Dict[str, Any], bool]:
        """
        Returns:
            (document, merged) where merged tells whether the document changed
        """
        path = _as_path(path)
        clicked = _require(doc, path, IMAGE, GALLERY)

        if self.path is None:
            self.path = path
            return doc, False

        if self.path == path:
            self.clear()
            return doc, False

        armed = find_node(doc, self.path)
        if armed is None or armed.get("type") not in (IMAGE, GALLERY):
            logger.debug(f"Stale image selection at {list(self.path)}, re-arming at {list(path)}")
            self.path = path
            return doc, False

        if armed["type"] == GALLERY and clicked["type"] == GALLERY:
            self.path = path
            return doc, False

        if clicked["type"] == GALLERY and armed["type"] == IMAGE:
            new_doc = add_image_to_gallery(doc, path, self.path)
        else:
            new_doc = merge_images(doc, self.path, path)

        self.clear()
        return new_doc, True
