"""
Unit tests for upload tree classification and normalization.
"""

import pytest

from fileproperty.business.models import UploadDescriptor, UploadErrorCode
from fileproperty.business.processors import (
    GroupedUploadNode,
    LeafUploadNode,
    SubTreeNode,
    UploadTreeNormalizer,
    classify_upload_node,
    collect_descriptors,
    without_missing_files,
)
from fileproperty.utils.exceptions import MalformedUploadError


def leaf(tmp_name='/tmp/a', name='a.png', error=0, size=10, mimetype='image/png'):
    return {'tmp_name': tmp_name, 'name': name, 'type': mimetype, 'size': size, 'error': error}


def grouped(*leaves):
    return {key: [entry[key] for entry in leaves] for key in ('tmp_name', 'name', 'type', 'size', 'error')}


@pytest.fixture
def normalizer():
    return UploadTreeNormalizer()


@pytest.mark.unit
class TestClassifyUploadNode:
    """Tests for raw node classification."""

    def test_scalar_error_is_leaf(self):
        assert isinstance(classify_upload_node(leaf()), LeafUploadNode)

    def test_array_error_is_grouped(self):
        assert isinstance(classify_upload_node(grouped(leaf(), leaf())), GroupedUploadNode)

    def test_keyed_error_is_grouped(self):
        node = {'tmp_name': {'cv': '/tmp/a'}, 'error': {'cv': 0}}
        assert isinstance(classify_upload_node(node), GroupedUploadNode)

    def test_mapping_without_error_is_sub_tree(self):
        assert isinstance(classify_upload_node({'avatar': leaf()}), SubTreeNode)

    @pytest.mark.parametrize('node', [None, 'text', 42, ['a']])
    def test_non_mappings_ignored(self, node):
        assert classify_upload_node(node) is None


@pytest.mark.unit
class TestUploadTreeNormalizer:
    """Tests for recursive normalization of raw upload trees."""

    def test_leaf_becomes_single_descriptor_list(self, normalizer):
        parsed = normalizer.parse({'avatar': leaf()})

        assert list(parsed) == ['avatar']
        assert parsed['avatar'] == [UploadDescriptor('/tmp/a', 'a.png', 'image/png', 10, UploadErrorCode.OK)]

    def test_grouped_field_keeps_per_index_association(self, normalizer):
        tree = {'gallery': grouped(
            leaf('/tmp/b', 'b.jpg', size=20),
            leaf('/tmp/c', 'c.jpg', size=30, error=UploadErrorCode.PARTIAL),
            leaf('/tmp/d', 'd.jpg', size=40),
        )}

        files = normalizer.parse(tree)['gallery']

        assert [(f.temporary_path, f.original_name, f.declared_size) for f in files] == [
            ('/tmp/b', 'b.jpg', 20),
            ('/tmp/c', 'c.jpg', 30),
            ('/tmp/d', 'd.jpg', 40),
        ]
        assert files[1].error_code == UploadErrorCode.PARTIAL

    def test_nested_sub_trees(self, normalizer):
        tree = {'profile': {'documents': grouped(leaf('/tmp/x', 'x.pdf'))}}

        parsed = normalizer.parse(tree)

        assert parsed['profile']['documents'][0].temporary_path == '/tmp/x'

    def test_string_keyed_grouped_entries_become_fields(self, normalizer):
        tree = {'profile': {
            'tmp_name': {'cv': '/tmp/cv', 'photo': '/tmp/photo'},
            'name': {'cv': 'cv.pdf', 'photo': 'me.png'},
            'error': {'cv': 0, 'photo': 0},
        }}

        parsed = normalizer.parse(tree)

        assert parsed['profile']['cv'][0].original_name == 'cv.pdf'
        assert parsed['profile']['photo'][0].temporary_path == '/tmp/photo'

    def test_nested_grouped_arrays(self, normalizer):
        tree = {'gallery': {
            'tmp_name': {'images': ['/tmp/1', '/tmp/2']},
            'name': {'images': ['1.png', '2.png']},
            'error': {'images': [0, 0]},
        }}

        parsed = normalizer.parse(tree)

        assert [f.original_name for f in parsed['gallery']['images']] == ['1.png', '2.png']

    def test_filter_drops_missing_files_and_prunes_empty_fields(self, normalizer):
        tree = {
            'avatar': leaf(error=UploadErrorCode.NO_FILE, name=''),
            'gallery': grouped(leaf('/tmp/b', error=UploadErrorCode.NO_FILE), leaf('/tmp/c')),
            'profile': {'documents': leaf(error=UploadErrorCode.NO_FILE)},
        }

        parsed = normalizer.parse(tree, filter_callback=without_missing_files)

        assert list(parsed) == ['gallery']
        assert [f.temporary_path for f in parsed['gallery']] == ['/tmp/c']

    def test_filter_receives_field_name(self, normalizer):
        seen = []

        def remember(descriptor, field_name):
            seen.append(field_name)
            return True

        normalizer.parse({'avatar': leaf()}, filter_callback=remember)

        assert seen == ['avatar']

    def test_filter_must_return_true_to_keep(self, normalizer):
        parsed = normalizer.parse({'avatar': leaf()}, filter_callback=lambda d, f: 1)

        assert parsed == {}

    def test_non_upload_values_ignored(self, normalizer):
        assert normalizer.parse({'comment': 'hello', 'count': 3}) == {}

    def test_search_key_returns_field_value(self, normalizer):
        tree = {'avatar': leaf(), 'other': leaf('/tmp/o')}

        files = normalizer.parse(tree, search_key='avatar')

        assert [f.temporary_path for f in files] == ['/tmp/a']

    def test_absent_search_key_returns_empty_list(self, normalizer):
        assert normalizer.parse({'avatar': leaf()}, search_key='gallery') == []

    def test_search_key_collection_restricts_fields(self, normalizer):
        tree = {'a': leaf('/tmp/a'), 'b': leaf('/tmp/b'), 'c': leaf('/tmp/c')}

        parsed = normalizer.parse(tree, search_key=['a', 'c', 'missing'])

        assert sorted(parsed) == ['a', 'c']

    def test_grouped_arrays_must_share_indices(self, normalizer):
        tree = {'gallery': {
            'tmp_name': ['/tmp/b', '/tmp/c'],
            'name': ['b.jpg'],
            'error': [0, 0],
        }}

        with pytest.raises(MalformedUploadError):
            normalizer.parse(tree)

    def test_grouped_attribute_must_be_array(self, normalizer):
        tree = {'gallery': {'tmp_name': '/tmp/b', 'error': [0]}}

        with pytest.raises(MalformedUploadError):
            normalizer.parse(tree)

    def test_missing_tmp_name_rejected(self, normalizer):
        with pytest.raises(MalformedUploadError) as exc_info:
            normalizer.parse({'avatar': {'name': 'a.png', 'error': 0}})

        assert exc_info.value.details['missing_keys'] == ['tmp_name']

    def test_grouped_missing_tmp_name_rejected(self, normalizer):
        with pytest.raises(MalformedUploadError):
            normalizer.parse({'gallery': {'name': ['a.png'], 'error': [0]}})

    def test_invalid_error_code_rejected(self, normalizer):
        with pytest.raises(MalformedUploadError):
            normalizer.parse({'avatar': leaf(error=5)})

    def test_tree_must_be_mapping(self, normalizer):
        with pytest.raises(MalformedUploadError):
            normalizer.parse(['not', 'a', 'tree'])


@pytest.mark.unit
class TestCollectDescriptors:
    """Tests for flattening normalized trees."""

    def test_depth_first_order(self, normalizer):
        parsed = normalizer.parse({
            'first': leaf('/tmp/1'),
            'nested': {'second': grouped(leaf('/tmp/2'), leaf('/tmp/3'))},
            'last': leaf('/tmp/4'),
        })

        assert [f.temporary_path for f in collect_descriptors(parsed)] == ['/tmp/1', '/tmp/2', '/tmp/3', '/tmp/4']

    @pytest.mark.parametrize('value', [None, [], {}, 'uploads/a.png', b'raw', 3])
    def test_non_descriptor_values_yield_nothing(self, value):
        assert collect_descriptors(value) == []
