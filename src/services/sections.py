"""
Sectioning of flat newsletter documents.

Newsletter bodies are usually a long run of sibling blocks where section
headers are just styled blocks among the others. A section is therefore a
range of siblings: from the block holding a header marker (inclusive) to the
block holding the next one (exclusive).

Usage:
    sections = extract_sections(tree, 'p:has(strong)')
    for section in sections:
        articles = process(tree, section, lambda doc: parse_links(doc))
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, TypeVar

from services.dom import DomTree, Selector

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class Section:
    """
    A titled range of sibling nodes.

    Attributes:
        title: Section title (text of the marker node by default)
        start: First node of the range (inclusive)
        end: Node ending the range (exclusive), None to run to the last sibling
    """
    title: str
    start: int
    end: Optional[int] = None


def extract_sections(
    tree: DomTree,
    selector: Selector,
    filter: Optional[Callable[[int], bool]] = None,
    title_of: Optional[Callable[[int], str]] = None,
    stop_node: Optional[int] = None,
    root: int = DomTree.ROOT,
) -> List[Section]:
    """
    Split a document into sections delimited by marker nodes.

    Args:
        tree: Document to split
        selector: CSS selector or node predicate finding the marker nodes
        filter: Additional predicate on marker nodes
        title_of: Computes a section title from its marker node
            (defaults to the marker's text content)
        stop_node: Node ending the last section (None: last sibling)
        root: Node whose descendants are searched for markers

    Returns:
        One section per marker, in document order (empty if no marker matched)

    Raises:
        ValueError: If stop_node shares no ancestor with the markers, or if
            it precedes the last marker
    """
    markers = tree.select(selector, root)
    if filter is not None:
        markers = [m for m in markers if filter(m)]
    if not markers:
        return []

    title_of = title_of or tree.text_content
    # The stop node must end up under the same ancestor as the markers
    ancestor = find_common_ancestor(tree, markers if stop_node is None else markers + [stop_node])
    boundaries = [find_boundary(tree, marker, ancestor) for marker in markers]

    last_end = None
    if stop_node is not None:
        last_end = find_boundary(tree, stop_node, ancestor)
        siblings = tree.children(ancestor)
        if siblings.index(last_end) < siblings.index(boundaries[-1]):
            raise ValueError(f"Stop node {stop_node} precedes the last section start")

    ends = boundaries[1:] + [last_end]
    sections = [
        Section(title=title_of(marker), start=start, end=end)
        for marker, start, end in zip(markers, boundaries, ends)
    ]
    logger.debug(f"Extracted {len(sections)} section(s): {[s.title for s in sections]}")
    return sections


def find_common_ancestor(tree: DomTree, nodes: Sequence[int]) -> int:
    """
    Find the deepest node that is an ancestor of every given node.

    Raises:
        ValueError: If nodes is empty or the nodes share no ancestor
    """
    if not nodes:
        raise ValueError("Cannot find the common ancestor of no node")

    chains = [tree.ancestors(node) for node in nodes]
    others = [set(chain) for chain in chains[1:]]
    for candidate in chains[0]:
        if all(candidate in chain for chain in others):
            return candidate
    raise ValueError(f"Nodes {list(nodes)} do not share a common ancestor")


def find_boundary(tree: DomTree, node: int, ancestor: int) -> int:
    """
    Walk up from node to the child of ancestor that contains it.

    Raises:
        ValueError: If node is not a descendant of ancestor
    """
    current = node
    while True:
        parent = tree.parent(current)
        if parent is None:
            raise ValueError(f"Node {node} is not a descendant of node {ancestor}")
        if parent == ancestor:
            return current
        current = parent


def section_nodes(tree: DomTree, section: Section) -> List[int]:
    """
    List the sibling nodes of a section: start inclusive, end exclusive.

    Raises:
        ValueError: If the section start has no parent
    """
    parent = tree.parent(section.start)
    if parent is None:
        raise ValueError(f"Section \"{section.title}\" starts on a node without parent")

    siblings = tree.children(parent)
    selected = []
    for node in siblings[siblings.index(section.start):]:
        if node == section.end:
            break
        selected.append(node)
    return selected


def process(tree: DomTree, section: Section, body: Callable[[DomTree], T]) -> T:
    """
    Run body on a standalone copy of the section's nodes.

    Args:
        tree: Document the section was extracted from
        section: Section to materialize
        body: Receives the section document and returns a result

    Returns:
        Whatever body returns
    """
    return body(tree.fragment(section_nodes(tree, section)))
