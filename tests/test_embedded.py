import json

from aura_gallery.handlers.embedded import EmbeddedMetadataHandler

from helpers import build_png, comfy_prompt, save_png, text_chunk, ztxt_chunk


def test_round_trip_metadata():
    workflow = {'nodes': [{'id': 6, 'type': 'CLIPTextEncode'}], 'links': []}
    prompt = {'6': {'class_type': 'CLIPTextEncode', 'inputs': {'text': 'hello'}}}
    data = build_png(text_chunk('workflow', json.dumps(workflow)), text_chunk('prompt', json.dumps(prompt)))

    result = EmbeddedMetadataHandler().extract_from_bytes(data)

    assert result.has_metadata is True
    assert result.prompt == 'hello'
    assert result.workflow == workflow
    assert result.errors == []


def test_truncated_prompt_keeps_valid_workflow():
    workflow = {'nodes': []}
    prompt_text = json.dumps(comfy_prompt())[:40]
    data = build_png(text_chunk('workflow', json.dumps(workflow)), text_chunk('prompt', prompt_text))

    result = EmbeddedMetadataHandler().extract_from_bytes(data)

    assert result.has_metadata is True
    assert result.workflow == workflow
    assert result.prompt is None
    assert result.node_info is None
    assert len(result.errors) == 1
    assert "'prompt'" in result.errors[0]


def test_prompt_only_counts_as_metadata():
    data = build_png(text_chunk('prompt', json.dumps(comfy_prompt('a cat'))))
    result = EmbeddedMetadataHandler().extract_from_bytes(data)

    assert result.has_metadata is True
    assert result.workflow is None
    assert result.prompt == 'a cat'
    assert result.node_info.checkpoint == 'sdxl.safetensors'


def test_prompt_that_is_not_an_object_is_a_decode_error():
    data = build_png(text_chunk('workflow', '[1, 2]'), text_chunk('prompt', '"just text"'))
    result = EmbeddedMetadataHandler().extract_from_bytes(data)

    assert result.has_metadata is True
    assert result.workflow == [1, 2]
    assert result.node_info is None
    assert len(result.errors) == 1


def test_unrelated_keys_are_ignored():
    data = build_png(text_chunk('parameters', 'a photo, Steps: 20'), text_chunk('Software', 'x'))
    result = EmbeddedMetadataHandler().extract_from_bytes(data)

    assert result.has_metadata is False
    assert result.workflow is None
    assert result.prompt is None


def test_compressed_workflow_chunk():
    data = build_png(ztxt_chunk('workflow', '{"version": 0.4}'))
    result = EmbeddedMetadataHandler().extract_from_bytes(data)

    assert result.has_metadata is True
    assert result.workflow == {'version': 0.4}


def test_not_a_png_yields_empty_result():
    result = EmbeddedMetadataHandler().extract_from_bytes(b'\xff\xd8\xff\xe0JFIF')

    assert result.has_metadata is False
    assert result.to_dict() == {'workflow': None, 'prompt': None, 'node_info': None, 'has_metadata': False}


def test_missing_file_yields_empty_result(tmp_path):
    handler = EmbeddedMetadataHandler()
    result = handler.read_metadata(str(tmp_path / 'missing.png'))

    assert result.has_metadata is False
    assert handler.error_history[-1]['level'] == 'WARNING'


def test_reads_pillow_written_file(tmp_path):
    path = save_png(tmp_path / 'gen.png', {'workflow': {'nodes': []}, 'prompt': comfy_prompt('red fox')})
    result = EmbeddedMetadataHandler().read_metadata(path)

    assert result.has_metadata is True
    assert result.prompt == 'red fox'
    assert result.node_info.steps == 20
    assert result.node_info.dimensions == {'width': 832, 'height': 1216, 'batch_size': 1}
    assert json.loads(result.workflow_json) == {'nodes': []}
