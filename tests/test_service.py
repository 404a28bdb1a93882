import os
from datetime import datetime, timezone

import pytest

from aura_gallery.service import GalleryService
from aura_gallery.utils.error_handling import GalleryError, NotAuthorizedError, NotFoundError
from aura_gallery.utils.tag_matcher import ANALYSIS_PROMPT

from helpers import save_comfy_png, save_png


class FakeClassifier:
    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def __call__(self, image_bytes, prompt):
        self.calls.append((len(image_bytes), prompt))
        return self.answer


@pytest.fixture
def classifier():
    return FakeClassifier("CLOTHING: bikini\nSETTING: outdoor beach\nPOSE: standing\nMOOD: playful")


@pytest.fixture
def service(tmp_path, classifier):
    svc = GalleryService(db_path=str(tmp_path / 'gallery.db'), storage_root=str(tmp_path / 'user_images'),
                         classifier=classifier)
    yield svc
    svc.cleanup()


@pytest.fixture
def users(service):
    return service.create_user('alice'), service.create_user('bob')


@pytest.fixture
def image_id(service, users, tmp_path):
    alice, _ = users
    path = save_comfy_png(tmp_path / 'upload.png', text='a quiet harbor')
    return service.upload_image(alice, path)['image_id']


def test_upload_stores_copy_with_metadata(service, users, tmp_path):
    alice, _ = users
    path = save_comfy_png(tmp_path / 'upload.png', text='a quiet harbor')

    result = service.upload_image(alice, path)
    image = service.get_image(alice, result['image_id'])

    assert result['has_metadata'] is True
    assert image['prompt_text'] == 'a quiet harbor'
    assert image['node_info']['checkpoint'] == 'sdxl.safetensors'
    assert image['filepath'] == str(tmp_path / 'user_images' / 'alice' / 'upload.png')
    assert image['workflow'] == {'nodes': [], 'version': 0.4}
    assert image['is_owner'] is True


def test_second_upload_with_same_name_is_renamed(service, users, tmp_path):
    alice, _ = users
    first = service.upload_image(alice, save_png(tmp_path / 'same.png'))
    second = service.upload_image(alice, save_png(tmp_path / 'same.png', color=(0, 0, 0)))

    assert first['filename'] == 'same.png'
    assert second['filename'] != 'same.png'
    assert second['filename'].startswith('same_')


def test_upload_rejects_other_types(service, users, tmp_path):
    alice, _ = users
    path = tmp_path / 'notes.txt'
    path.write_text('hi')
    with pytest.raises(ValueError):
        service.upload_image(alice, str(path))


def test_visibility_and_ownership(service, users, image_id):
    alice, bob = users

    with pytest.raises(NotFoundError):
        service.get_image(bob, image_id)
    with pytest.raises(NotAuthorizedError):
        service.add_tag(bob, image_id, 'mine')
    with pytest.raises(NotFoundError):
        service.add_tag(alice, 9999, 'ghost')

    service.share_image(alice, image_id, bob)
    seen = service.get_image(bob, image_id)
    assert seen['is_owner'] is False

    # shares are read only
    with pytest.raises(NotAuthorizedError):
        service.delete_image(bob, image_id)
    assert [s['id'] for s in service.shared_images(bob)] == [image_id]
    assert [u['username'] for u in service.shared_with(alice, image_id)] == ['bob']

    service.unshare_image(alice, image_id, bob)
    with pytest.raises(NotFoundError):
        service.get_image(bob, image_id)


def test_share_rules(service, users, image_id):
    alice, bob = users
    with pytest.raises(ValueError):
        service.share_image(alice, image_id, alice)
    with pytest.raises(NotFoundError):
        service.share_image(alice, image_id, 4242)
    with pytest.raises(NotAuthorizedError):
        service.share_image(bob, image_id, alice)


def test_tags_lifecycle(service, users, image_id):
    alice, _ = users
    service.add_tag(alice, image_id, ' harbor ')
    service.add_tag(alice, image_id, 'night')

    assert [t['tag_name'] for t in service.get_image(alice, image_id)['tags']] == ['harbor', 'night']
    with pytest.raises(ValueError):
        service.rename_tag(alice, 'harbor', 'night')
    assert service.rename_tag(alice, 'harbor', 'port') == 1
    service.remove_tag(alice, image_id, 'night')
    assert [t['tag_name'] for t in service.list_tags(alice)] == ['port']
    assert service.delete_tag(alice, 'port') == 1
    assert service.list_tags(alice) == []


def test_toggle_favorite(service, users, image_id):
    alice, _ = users
    assert service.toggle_favorite(alice, image_id) is True
    assert service.get_image(alice, image_id)['is_favorite'] is True
    assert service.toggle_favorite(alice, image_id) is False


def test_delete_removes_file_and_record(service, users, image_id):
    alice, _ = users
    path = service.get_image(alice, image_id)['filepath']
    service.add_tag(alice, image_id, 'gone')

    service.delete_image(alice, image_id)

    assert not os.path.exists(path)
    assert service.list_tags(alice) == []
    with pytest.raises(NotFoundError):
        service.get_image(alice, image_id)


def test_filter_options_and_listing(service, users, image_id, tmp_path):
    alice, _ = users
    service.upload_image(alice, save_png(tmp_path / 'plain.png'))

    assert service.filter_options(alice) == {'checkpoints': ['sdxl.safetensors'], 'samplers': ['euler']}
    assert [img['id'] for img in service.list_images(alice, checkpoint='sdxl.safetensors')] == [image_id]
    assert len(service.list_images(alice)) == 2


def test_suggest_and_apply_tags(service, users, image_id, classifier):
    alice, bob = users

    suggestion = service.suggest_tags(alice, image_id)
    assert suggestion['suggested_tags'] == ['bikini', 'outdoor', 'standing', 'playful', 'Rated: PG']
    assert classifier.calls[0][1] == ANALYSIS_PROMPT

    applied = service.apply_tags(alice, image_id, suggestion['suggested_tags'])
    assert applied == suggestion['suggested_tags']
    categories = {t['tag_name']: t['category'] for t in service.list_tags(alice)}
    assert categories['outdoor'] == 'setting'
    assert categories['Rated: PG'] == 'rating'

    with pytest.raises(NotFoundError):
        service.suggest_tags(bob, image_id)


def test_batch_suggest_folds_failures(service, users, image_id):
    alice, _ = users
    result = service.batch_suggest_tags(alice, [image_id, 777])

    assert result['summary'] == {'total': 2, 'succeeded': 1, 'failed': 1}
    assert result['results'][0]['success'] is True
    assert result['results'][1] == {'image_id': 777, 'success': False, 'error': 'Image 777 not found'}


def test_batch_apply_skips_foreign_images(service, users, image_id):
    alice, bob = users
    applied = service.batch_apply_tags(bob, [{'image_id': image_id, 'tags': ['x']}])
    assert applied == 0
    assert service.batch_apply_tags(alice, [{'image_id': image_id, 'tags': ['x']}]) == 1


def test_suggest_without_classifier(tmp_path, users, image_id):
    alice, _ = users
    svc = GalleryService(db_path=str(tmp_path / 'gallery.db'), storage_root=str(tmp_path / 'user_images'))
    with pytest.raises(GalleryError):
        svc.suggest_tags(alice, image_id)
    svc.cleanup()


def test_analytics_over_stored_corpus(service, users, image_id, tmp_path):
    alice, bob = users
    service.toggle_favorite(alice, image_id)
    service.add_tag(alice, image_id, 'harbor')

    stats = service.get_analytics(alice, now=datetime.now(timezone.utc))

    assert stats['overview']['total_images'] == 1
    assert stats['overview']['total_favorites'] == 1
    assert stats['overview']['total_tags'] == 1
    assert stats['quality_metrics']['favorite_rate_by_checkpoint'][0]['rate'] == 1.0
    assert stats['prompt_analysis']['common_words'][:2] == [{'word': 'quiet', 'count': 1},
                                                            {'word': 'harbor', 'count': 1}]
    assert service.get_analytics(bob)['overview']['total_images'] == 0


def test_import_through_service(service, users, tmp_path):
    alice, _ = users
    folder = tmp_path / 'output'
    folder.mkdir()
    save_comfy_png(folder / 'a.png')

    assert service.scan_directory(alice, str(folder))['total'] == 1
    review = service.review_directory(alice, str(folder))
    assert review['items'][0]['status'] == 'new'
    summary = service.import_directory(alice, str(folder), 'copy')
    assert summary.to_dict()['imported'] == 1


def test_tag_with_comma_stays_whole(service, users, image_id):
    alice, _ = users
    service.add_tag(alice, image_id, 'red, blue')

    assert service.get_analytics(alice)['overview']['total_tags'] == 1
    assert service.list_images(alice)[0]['tags'] == ['red, blue']
