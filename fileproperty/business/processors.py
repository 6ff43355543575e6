"""
Upload Tree Processing for the File Property Engine

Normalizes the raw, multi-field upload tree produced by the transport layer
into per-field lists of UploadDescriptor records.

The transport tree mirrors the form that was submitted:

    {
        'avatar': {'tmp_name': '/tmp/a', 'name': 'a.png', 'type': 'image/png', 'size': 10, 'error': 0},
        'gallery': {
            'tmp_name': ['/tmp/b', '/tmp/c'],
            'name': ['b.jpg', 'c.jpg'],
            'type': ['image/jpeg', 'image/jpeg'],
            'size': [20, 30],
            'error': [0, 0],
        },
        'profile': {'documents': {...}},
    }

and normalizes to:

    {
        'avatar': [UploadDescriptor('/tmp/a', ...)],
        'gallery': [UploadDescriptor('/tmp/b', ...), UploadDescriptor('/tmp/c', ...)],
        'profile': {'documents': [...]},
    }

Node Classification:
    LeafUploadNode: a descriptor whose ``error`` is a scalar
    GroupedUploadNode: parallel arrays of the five attributes, one entry per index
    SubTreeNode: any other mapping, holding further fields

Integer-indexed grouped entries (several files for one field) are collected
into the field's list; string-keyed grouped entries become nested fields.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from ..utils.exceptions import MalformedUploadError
from .models import DESCRIPTOR_KEYS, UploadDescriptor

logger = structlog.get_logger(__name__)

FilterCallback = Callable[[UploadDescriptor, Any], bool]
NormalizedTree = Dict[Any, Any]


# ============================================================================
# NODE CLASSIFICATION
# ============================================================================

@dataclass(frozen=True)
class LeafUploadNode:
    """A single descriptor ``{tmp_name, name, type, size, error}``."""

    entry: Mapping[str, Any]


@dataclass(frozen=True)
class GroupedUploadNode:
    """Parallel arrays of descriptor attributes keyed by the same indices."""

    entry: Mapping[str, Any]


@dataclass(frozen=True)
class SubTreeNode:
    """A group of further fields."""

    children: Mapping[Any, Any]


UploadNode = Union[LeafUploadNode, GroupedUploadNode, SubTreeNode]


def _is_array(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple))


def classify_upload_node(node: Any) -> Optional[UploadNode]:
    """
    Classify one node of a raw upload tree.

    A mapping carrying an ``error`` key is a descriptor node: a leaf when
    ``error`` is a scalar, a grouped node when it is array-valued. Any other
    mapping is a sub-tree. Non-mapping values are not upload nodes.

    Args:
        node: Raw tree node

    Returns:
        The classified node, or None when the node should be ignored
    """
    if not isinstance(node, Mapping):
        return None

    if 'error' in node:
        if _is_array(node['error']):
            return GroupedUploadNode(node)
        return LeafUploadNode(node)

    return SubTreeNode(node)


def _indexed_items(values: Any) -> List[tuple]:
    if isinstance(values, Mapping):
        return list(values.items())
    return list(enumerate(values))


# ============================================================================
# TREE NORMALIZER
# ============================================================================

class UploadTreeNormalizer:
    """
    Recursive normalizer for raw upload trees.

    Stateless; a single instance can be shared.
    """

    def parse(
        self,
        tree: Mapping[Any, Any],
        filter_callback: Optional[FilterCallback] = None,
        search_key: Optional[Union[str, Iterable[str]]] = None
    ) -> Union[NormalizedTree, List[UploadDescriptor]]:
        """
        Normalize a raw upload tree.

        Args:
            tree: Raw upload tree keyed by field name
            filter_callback: Optional predicate ``(descriptor, field_name) -> bool``;
                descriptors for which it returns False are dropped
            search_key: A single top-level field name, whose normalized value is
                returned directly (``[]`` when absent), or a collection of
                top-level field names restricting the returned mapping

        Returns:
            The normalized tree, or the value of ``search_key`` when a single
            key is requested

        Raises:
            MalformedUploadError: If a descriptor lacks ``tmp_name`` or a grouped
                node's parallel arrays do not share the same indices
        """
        if not isinstance(tree, Mapping):
            raise MalformedUploadError(
                "Upload tree must be a mapping",
                details={'received': type(tree).__name__}
            )

        if search_key is None:
            return self._parse_tree(tree, filter_callback)

        if isinstance(search_key, str):
            if search_key not in tree:
                return []
            parsed = self._parse_tree({search_key: tree[search_key]}, filter_callback)
            return parsed.get(search_key, [])

        wanted = set(search_key)
        subset = {key: value for key, value in tree.items() if key in wanted}
        return self._parse_tree(subset, filter_callback)

    def _parse_tree(self, tree: Mapping[Any, Any], filter_callback: Optional[FilterCallback]) -> NormalizedTree:
        parsed: NormalizedTree = {}

        for field_name, raw_node in tree.items():
            value = self._parse_node(field_name, raw_node, filter_callback)
            if value:
                parsed[field_name] = value

        return parsed

    def _parse_node(
        self,
        field_name: Any,
        raw_node: Any,
        filter_callback: Optional[FilterCallback]
    ) -> Union[NormalizedTree, List[UploadDescriptor], None]:
        node = classify_upload_node(raw_node)

        if isinstance(node, LeafUploadNode):
            descriptor = UploadDescriptor.from_mapping(node.entry)
            if filter_callback is not None and filter_callback(descriptor, field_name) is not True:
                logger.debug(
                    "Upload descriptor filtered out",
                    field=field_name,
                    error_code=int(descriptor.error_code)
                )
                return None
            return [descriptor]

        if isinstance(node, GroupedUploadNode):
            return self._parse_grouped(field_name, node, filter_callback)

        if isinstance(node, SubTreeNode):
            return self._parse_tree(node.children, filter_callback)

        return None

    def _parse_grouped(
        self,
        field_name: Any,
        node: GroupedUploadNode,
        filter_callback: Optional[FilterCallback]
    ) -> Union[NormalizedTree, List[UploadDescriptor], None]:
        """
        Split a grouped node into one node per index and normalize each.

        Every index yields a node rebuilt from the per-index values of the five
        attributes; such a node may itself be grouped (nested field arrays).
        """
        fields: NormalizedTree = {}
        for index, sub_node in self._split_grouped(field_name, node.entry):
            value = self._parse_node(index, sub_node, filter_callback)
            if value:
                fields[index] = value

        if not fields:
            return None

        positional = all(
            isinstance(index, int) and isinstance(value, list)
            for index, value in fields.items()
        )
        if not positional:
            return fields

        files: List[UploadDescriptor] = []
        for value in fields.values():
            files.extend(value)
        return files

    def _split_grouped(self, field_name: Any, entry: Mapping[str, Any]) -> List[tuple]:
        if entry.get('tmp_name') is None:
            raise MalformedUploadError(
                "Grouped upload field is missing required keys",
                missing_keys=['tmp_name'],
                details={'field': str(field_name)}
            )

        errors = _indexed_items(entry['error'])
        indices = [index for index, _ in errors]

        columns: Dict[str, Dict[Any, Any]] = {}
        for key in DESCRIPTOR_KEYS:
            if key == 'error' or entry.get(key) is None:
                continue
            values = entry[key]
            if not _is_array(values):
                raise MalformedUploadError(
                    f"Grouped upload attribute '{key}' must be an array",
                    details={'field': str(field_name), 'attribute': key}
                )
            items = _indexed_items(values)
            if [index for index, _ in items] != indices:
                raise MalformedUploadError(
                    f"Grouped upload attribute '{key}' does not match the error indices",
                    details={
                        'field': str(field_name),
                        'attribute': key,
                        'expected_indices': [str(index) for index in indices],
                        'received_indices': [str(index) for index, _ in items],
                    }
                )
            columns[key] = dict(items)

        split: List[tuple] = []
        for index, error in errors:
            sub_node: Dict[str, Any] = {'error': error}
            for key, values in columns.items():
                sub_node[key] = values[index]
            split.append((index, sub_node))

        return split


def collect_descriptors(normalized: Union[NormalizedTree, Sequence[UploadDescriptor], None]) -> List[UploadDescriptor]:
    """
    Flatten a normalized tree (or field value) into its descriptors, depth first.

    Args:
        normalized: Output of UploadTreeNormalizer.parse

    Returns:
        Every descriptor in tree order
    """
    if not normalized or isinstance(normalized, (str, bytes)):
        return []

    if isinstance(normalized, UploadDescriptor):
        return [normalized]

    if isinstance(normalized, Mapping):
        descriptors: List[UploadDescriptor] = []
        for value in normalized.values():
            descriptors.extend(collect_descriptors(value))
        return descriptors

    if not isinstance(normalized, (list, tuple)):
        return []

    descriptors = []
    for value in normalized:
        descriptors.extend(collect_descriptors(value))
    return descriptors


def without_missing_files(descriptor: UploadDescriptor, field_name: Any) -> bool:
    """Filter callback dropping descriptors that signal no file was submitted."""
    return descriptor.has_file


__all__ = [
    'LeafUploadNode',
    'GroupedUploadNode',
    'SubTreeNode',
    'UploadNode',
    'classify_upload_node',
    'UploadTreeNormalizer',
    'collect_descriptors',
    'without_missing_files',
]
