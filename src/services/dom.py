"""
Arena document model for newsletter HTML.

A DomTree stores every node of a document in a flat list: a node is addressed
by its integer id, knows its parent id and its ordered child ids. Sections of a
newsletter are sibling ranges of this tree, so navigation is done on ids
rather than on live parser objects.

CSS selectors are evaluated by BeautifulSoup (soupsieve) against a shadow soup
rebuilt lazily from the arena and mapped back to node ids.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

logger = logging.getLogger(__name__)

DOCUMENT = '#document'
TEXT = '#text'

# Elements rendered on their own line: their text is separated from neighbours
BLOCK_TAGS = frozenset({
    'address', 'article', 'aside', 'blockquote', 'br', 'dd', 'div', 'dl', 'dt',
    'figcaption', 'figure', 'footer', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'header', 'hr', 'li', 'main', 'nav', 'ol', 'p', 'pre', 'section', 'table',
    'tbody', 'td', 'tfoot', 'th', 'thead', 'tr', 'ul',
})

Selector = Union[str, Callable[[int], bool]]


@dataclass
class Node:
    """
    One node of the arena.

    Attributes:
        id: Index of the node in its tree
        tag: Lower-case element name, '#text' or '#document'
        attrs: Element attributes (multi-valued attributes joined by spaces)
        text: Character data of a '#text' node
        parent: Parent id (None for the document root)
        children: Ordered child ids
    """
    id: int
    tag: str
    attrs: Dict[str, str] = field(default_factory=dict)
    text: str = ''
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)

    @property
    def is_element(self) -> bool:
        return self.tag not in (TEXT, DOCUMENT)


class DomTree:
    """
    Indexed document tree.

    The root (id 0) is always a '#document' node. Trees parsed from HTML get
    ids in document order; nodes added afterwards get the next free id.

    Example:
        >>> tree = DomTree.from_html('<p>Hello <b>world</b></p>')
        >>> [tree.text_content(n) for n in tree.select('b')]
        ['world']
    """

    ROOT = 0

    def __init__(self):
        self._nodes: List[Node] = [Node(id=self.ROOT, tag=DOCUMENT)]
        self._soup: Optional[BeautifulSoup] = None
        self._tags: Dict[int, Tag] = {}
        self._ids_by_tag: Dict[int, int] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_html(cls, html: str) -> 'DomTree':
        """Parse an HTML string (document or fragment) into a tree."""
        return cls.from_soup(BeautifulSoup(html, 'html.parser'))

    @classmethod
    def from_soup(cls, soup: Tag) -> 'DomTree':
        """
        Build a tree from an already parsed BeautifulSoup document.

        Comments, doctypes and other declarations are skipped.
        """
        tree = cls()
        stack = [(child, cls.ROOT) for child in reversed(list(soup.children))]

        while stack:
            bs_node, parent_id = stack.pop()
            if isinstance(bs_node, NavigableString):
                if isinstance(bs_node, PreformattedString):
                    continue
                tree.add_text(parent_id, str(bs_node))
            elif isinstance(bs_node, Tag):
                node_id = tree.add_element(parent_id, bs_node.name, _flatten_attrs(bs_node.attrs))
                stack.extend((child, node_id) for child in reversed(list(bs_node.children)))

        return tree

    def add_element(self, parent: int, tag: str, attrs: Optional[Dict[str, str]] = None) -> int:
        """Append an element as last child of parent and return its id."""
        return self._append(Node(id=len(self._nodes), tag=tag.lower(), attrs=dict(attrs or {}), parent=parent))

    def add_text(self, parent: int, text: str) -> int:
        """Append a text node as last child of parent and return its id."""
        return self._append(Node(id=len(self._nodes), tag=TEXT, text=text, parent=parent))

    def _append(self, node: Node) -> int:
        parent = self._nodes[node.parent]
        if parent.tag == TEXT:
            raise ValueError(f"Text node {parent.id} cannot have children")
        self._nodes.append(node)
        parent.children.append(node.id)
        self._soup = None
        return node.id

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: int) -> Node:
        return self._nodes[node_id]

    def tag(self, node_id: int) -> str:
        return self._nodes[node_id].tag

    def is_element(self, node_id: int) -> bool:
        return self._nodes[node_id].is_element

    def parent(self, node_id: int) -> Optional[int]:
        return self._nodes[node_id].parent

    def children(self, node_id: int) -> List[int]:
        return list(self._nodes[node_id].children)

    def element_children(self, node_id: int) -> List[int]:
        return [c for c in self._nodes[node_id].children if self._nodes[c].is_element]

    def ancestors(self, node_id: int) -> List[int]:
        """Ancestors of a node, nearest first, up to the root. The node itself is excluded."""
        chain = []
        current = self._nodes[node_id].parent
        while current is not None:
            chain.append(current)
            current = self._nodes[current].parent
        return chain

    def next_siblings(self, node_id: int) -> List[int]:
        """Siblings (text nodes included) following a node, in order."""
        parent = self._nodes[node_id].parent
        if parent is None:
            return []
        siblings = self._nodes[parent].children
        return siblings[siblings.index(node_id) + 1:]

    def next_element_siblings(self, node_id: int) -> List[int]:
        return [s for s in self.next_siblings(node_id) if self._nodes[s].is_element]

    def descendants(self, node_id: int = ROOT) -> Iterator[int]:
        """Descendants of a node in document order, the node itself excluded."""
        stack = list(reversed(self._nodes[node_id].children))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self._nodes[current].children))

    def attr(self, node_id: int, name: str, default: str = '') -> str:
        return self._nodes[node_id].attrs.get(name, default)

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def text_content(self, node_id: int) -> str:
        """
        Whitespace-normalized text of a node and its descendants.

        Block elements and line breaks separate the text of their neighbours.
        """
        pieces = []
        stack: List[Optional[int]] = [node_id]
        while stack:
            current = stack.pop()
            if current is None:
                pieces.append(' ')
                continue
            node = self._nodes[current]
            if node.tag == TEXT:
                pieces.append(node.text)
                continue
            if node.tag in BLOCK_TAGS:
                pieces.append(' ')
                stack.append(None)
            stack.extend(reversed(node.children))
        return normalize_whitespace(''.join(pieces))

    def own_text(self, node_id: int) -> str:
        """Whitespace-normalized text of the direct text children of a node."""
        return normalize_whitespace(''.join(
            self._nodes[c].text for c in self._nodes[node_id].children if self._nodes[c].tag == TEXT
        ))

    def raw_text(self, node_id: int) -> str:
        """Character data of a node and its descendants, untouched."""
        node = self._nodes[node_id]
        if node.tag == TEXT:
            return node.text
        return ''.join(self._nodes[d].text for d in self.descendants(node_id) if self._nodes[d].tag == TEXT)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, selector: Selector, root: int = ROOT) -> List[int]:
        """
        Find the descendants of root matching a selector, in document order.

        Args:
            selector: CSS selector (soupsieve syntax, :has() supported)
                or a predicate over node ids
            root: Node whose descendants are searched

        Returns:
            Matching node ids
        """
        if callable(selector):
            return [n for n in self.descendants(root) if selector(n)]

        scope = self._shadow_tag(root)
        return [self._ids_by_tag[id(tag)] for tag in scope.select(selector)]

    def select_first(self, selector: Selector, root: int = ROOT) -> Optional[int]:
        matches = self.select(selector, root)
        return matches[0] if matches else None

    def matches(self, node_id: int, selector: str) -> bool:
        """Check whether an element matches a CSS selector."""
        if not self.is_element(node_id):
            return False
        return self._shadow_tag(node_id).css.match(selector)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def fragment(self, node_ids: Sequence[int]) -> 'DomTree':
        """
        Copy nodes (with their subtrees) into a new standalone tree.

        The copies become the root's children, in the given order. The
        current tree is left untouched.
        """
        copy = DomTree()
        stack = [(node_id, DomTree.ROOT) for node_id in reversed(node_ids)]
        while stack:
            source_id, parent_id = stack.pop()
            source = self._nodes[source_id]
            if source.tag == TEXT:
                copy.add_text(parent_id, source.text)
                continue
            if source.tag == DOCUMENT:
                new_id = parent_id
            else:
                new_id = copy.add_element(parent_id, source.tag, source.attrs)
            stack.extend((child, new_id) for child in reversed(source.children))
        return copy

    @property
    def soup(self) -> BeautifulSoup:
        """BeautifulSoup view of the whole tree (read-only use)."""
        return self._shadow_tag(self.ROOT)

    def _shadow_tag(self, node_id: int) -> Tag:
        if self._soup is None:
            self._build_soup()
        return self._tags[node_id]

    def _build_soup(self):
        soup = BeautifulSoup('', 'html.parser')
        tags: Dict[int, Tag] = {self.ROOT: soup}
        ids_by_tag = {id(soup): self.ROOT}

        for node_id in self.descendants(self.ROOT):
            node = self._nodes[node_id]
            parent_tag = tags[node.parent]
            if node.tag == TEXT:
                parent_tag.append(NavigableString(node.text))
                continue
            tag = soup.new_tag(node.tag, attrs=dict(node.attrs))
            parent_tag.append(tag)
            tags[node_id] = tag
            ids_by_tag[id(tag)] = node_id

        self._soup = soup
        self._tags = tags
        self._ids_by_tag = ids_by_tag
        logger.debug(f"Built shadow soup for {len(self._nodes)} nodes")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and strip the ends."""
    return ' '.join(text.split())


def _flatten_attrs(attrs: Dict) -> Dict[str, str]:
    flat = {}
    for name, value in attrs.items():
        if isinstance(value, (list, tuple)):
            value = ' '.join(value)
        flat[name] = value
    return flat
