"""
Upload Workflow Integration Testing Suite

Runs complete save cycles of FilePropertyService against real directories:
native multi-file submissions, data URIs, staged files, already-stored paths
and localized values, checking the values returned for persistence together
with the resulting filesystem state.

Key Testing Areas:
- Distinct targets for several candidates resolving to the same name
- Fallback from native uploads to the current value
- Already-stored paths carried over without any filesystem access
- Localized properties saved per locale
- Fatal versus per-candidate error handling
- The accepted check-then-write race between concurrent savers
"""

import os
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from fileproperty.utils.exceptions import DirectoryNotWritableError, MalformedUploadError


def grouped_tree(ident, *uploads):
    """Combine transport leaves into the grouped form of a multi-file field."""
    return {ident: {key: [upload[key] for upload in uploads] for key in ('tmp_name', 'name', 'type', 'size', 'error')}}


def stored_files(service):
    directory = service.upload_directory()
    if not os.path.isdir(directory):
        return []
    return sorted(os.listdir(directory))


@pytest.mark.integration
class TestNativeUploads:
    """Save cycles driven by the raw upload tree."""

    def test_same_name_uploads_get_distinct_paths(self, make_service, make_upload, png_bytes):
        service = make_service(multiple=True)
        tree = grouped_tree('attachment', make_upload(name='photo.png'), make_upload(name='photo.png'))

        paths = service.save([], tree)

        assert len(paths) == 2
        assert paths[0] == 'uploads/photo.png'
        assert paths[1] != paths[0]
        assert len(stored_files(service)) == 2
        for path in paths:
            with open(service.absolute_path(path), 'rb') as handle:
                assert handle.read() == png_bytes

    def test_single_property_keeps_first_file(self, service, make_upload):
        tree = grouped_tree('attachment', make_upload(name='a.png'), make_upload(name='b.png'))

        assert service.save(None, tree) == 'uploads/a.png'

    def test_other_fields_ignored(self, service, make_upload):
        tree = {'avatar': make_upload(name='avatar.png'), 'attachment': make_upload(name='doc.png')}

        assert service.save(None, tree) == 'uploads/doc.png'
        assert stored_files(service) == ['doc.png']

    def test_no_file_falls_back_to_current_value(self, service, make_upload):
        tree = {'attachment': {'tmp_name': '', 'name': '', 'type': '', 'size': 0, 'error': 4}}

        assert service.save('uploads/old.png', tree) == 'uploads/old.png'
        assert stored_files(service) == []

    def test_rejected_upload_falls_back_to_current_value(self, make_service, make_upload, validator, jpeg_bytes):
        service = make_service(accepted_mimetypes=['image/png'])
        tree = {'attachment': make_upload(jpeg_bytes, name='photo.png')}

        assert service.save('uploads/old.png', tree) == 'uploads/old.png'
        assert validator.keys() == ['acceptedMimetypes']

    def test_malformed_tree_aborts(self, service):
        with pytest.raises(MalformedUploadError):
            service.save(None, {'attachment': {'name': 'photo.png', 'error': 0}})


@pytest.mark.integration
class TestCurrentValues:
    """Save cycles driven by the current value."""

    @freeze_time("2024-03-07 09:05:02")
    def test_data_uris_at_same_second_get_distinct_paths(self, make_service, data_uri, png_bytes):
        service = make_service(multiple=True)
        value = [data_uri(png_bytes, 'image/png'), data_uri(png_bytes, 'image/png')]

        paths = service.save(value)

        assert paths[0] == 'uploads/Attachment 2024-03-07 09-05-02.png'
        assert paths[1].startswith('uploads/Attachment 2024-03-07 09-05-02-')
        assert len(set(paths)) == 2

    def test_stored_paths_kept_without_filesystem_access(self, make_service):
        service = make_service(multiple=True)

        with patch('fileproperty.business.services.open', create=True) as mocked_open, \
                patch('fileproperty.business.services.shutil.move') as mocked_move, \
                patch('fileproperty.business.services.os.makedirs') as mocked_makedirs:
            paths = service.save(['uploads/old.jpg', 'uploads/other.pdf'])

        assert paths == ['uploads/old.jpg', 'uploads/other.pdf']
        mocked_open.assert_not_called()
        mocked_move.assert_not_called()
        mocked_makedirs.assert_not_called()
        assert not os.path.exists(service.upload_directory())

    def test_mixed_values(self, make_service, stage_file, data_uri, png_bytes):
        service = make_service(multiple=True)
        stage_file('staged01')

        paths = service.save([
            'uploads/kept.png',
            {'id': 'staged01', 'name': 'scan.png'},
            data_uri(png_bytes, 'image/png'),
            '',
        ])

        assert paths[0] == 'uploads/kept.png'
        assert paths[1] == 'uploads/scan.png'
        assert paths[2].startswith('uploads/Attachment ')
        assert len(paths) == 3

    def test_missing_staged_file_skipped(self, make_service, stage_file):
        service = make_service(multiple=True)
        stage_file('present')

        paths = service.save([{'id': 'gone', 'name': 'a.png'}, {'id': 'present', 'name': 'b.png'}])

        assert paths == ['uploads/b.png']

    def test_undecodable_data_uri_skipped(self, service):
        assert service.save('data:image/png;base64,abc') is None

    def test_empty_values(self, make_service, service):
        assert service.save(None) is None
        assert service.save('') == ''
        assert make_service(multiple=True).save(None) == []
        assert make_service(multiple=True).save('') == []

    def test_scalar_value_wrapped_for_multiple(self, make_service):
        assert make_service(multiple=True).save('uploads/a.png') == ['uploads/a.png']

    def test_unwritable_directory_aborts(self, service, data_uri, png_bytes):
        with patch('fileproperty.business.services.os.access', return_value=False):
            with pytest.raises(DirectoryNotWritableError):
                service.save(data_uri(png_bytes, 'image/png'))

    def test_malformed_staged_reference_aborts(self, service):
        with pytest.raises(MalformedUploadError):
            service.save({'id': 'abc'})


@pytest.mark.integration
class TestLocalizedValues:
    """Save cycles for properties holding one value per locale."""

    def test_uploads_and_values_per_locale(self, make_service, make_upload, data_uri, png_bytes):
        service = make_service(l10n=True, multiple=True, locales=['en', 'fr', 'de'])
        tree = {'attachment': {'en': make_upload(name='english.png')}}

        saved = service.save({'en': ['uploads/old.png'], 'fr': [data_uri(png_bytes, 'image/png')]}, tree)

        assert saved['en'] == ['uploads/english.png']
        assert len(saved['fr']) == 1
        assert saved['fr'][0].startswith('uploads/Attachment ')
        assert saved['de'] == []

    def test_single_value_locales(self, make_service):
        service = make_service(l10n=True, locales=['en', 'fr'])

        assert service.save({'en': 'uploads/en.png'}) == {'en': 'uploads/en.png', 'fr': ''}

    def test_unknown_locales_kept(self, make_service):
        service = make_service(l10n=True, locales=['en'])

        assert service.save({'en': 'uploads/en.png', 'it': 'uploads/it.png'}) == {
            'en': 'uploads/en.png',
            'it': 'uploads/it.png',
        }

    def test_none_value(self, make_service):
        assert make_service(l10n=True, locales=['en']).save(None) == {'en': ''}

    def test_value_must_be_mapping(self, make_service):
        with pytest.raises(MalformedUploadError):
            make_service(l10n=True, locales=['en']).save('uploads/a.png')


@pytest.mark.integration
class TestConcurrentSavers:
    """Collision handling across services sharing one upload directory."""

    @freeze_time("2024-03-07 09:05:02")
    def test_sequential_savers_never_collide(self, make_service, data_uri, png_bytes):
        first, second = make_service(), make_service()

        path_one = first.save(data_uri(png_bytes, 'image/png'))
        path_two = second.save(data_uri(png_bytes, 'image/png'))

        assert path_one == 'uploads/Attachment 2024-03-07 09-05-02.png'
        assert path_two != path_one
        assert len(stored_files(first)) == 2

    def test_failed_payloads_are_not_persisted(self, make_service):
        service = make_service(multiple=True)

        assert service.save([{'id': 'gone', 'name': 'a.png'}, 'data:image/png;base64,abc']) == []

    def test_targets_resolved_before_either_write_can_coincide(self, make_service, png_bytes):
        first, second = make_service(), make_service()

        target_one = first.upload_target('report.png')
        target_two = second.upload_target('report.png')
        for target in (target_one, target_two):
            with open(target.absolute_path, 'wb') as handle:
                handle.write(png_bytes)

        assert target_one == target_two
        assert stored_files(first) == ['report.png']

    def test_unique_name_search_terminates(self, service, data_uri, png_bytes):
        directory = service.upload_directory()
        os.makedirs(directory)
        for name in ('scan.png', 'scan-aaa.png'):
            open(os.path.join(directory, name), 'wb').close()

        with patch('fileproperty.business.utils.unique_token', side_effect=['aaa', 'aaa', 'bbb']):
            path = service.upload_target('scan.png').relative_path

        assert path == 'uploads/scan-bbb.png'
