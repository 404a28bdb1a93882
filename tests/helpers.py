import json
import struct
import zlib

from PIL import Image
from PIL.PngImagePlugin import PngInfo

SIGNATURE = b'\x89PNG\r\n\x1a\n'


def chunk(chunk_type: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + data) & 0xffffffff
    return struct.pack('>I', len(data)) + chunk_type + data + struct.pack('>I', crc)


def text_chunk(key: str, value: str) -> bytes:
    return chunk(b'tEXt', key.encode('latin-1') + b'\x00' + value.encode('utf-8'))


def ztxt_chunk(key: str, value: str) -> bytes:
    return chunk(b'zTXt', key.encode('latin-1') + b'\x00\x00' + zlib.compress(value.encode('utf-8')))


def itxt_chunk(key: str, value: str, compressed: bool = False) -> bytes:
    text = value.encode('utf-8')
    if compressed:
        text = zlib.compress(text)
    flag = b'\x01' if compressed else b'\x00'
    return chunk(b'iTXt', key.encode('latin-1') + b'\x00' + flag + b'\x00' + b'en\x00' + b'\x00' + text)


def build_png(*chunks: bytes) -> bytes:
    """Minimal container: signature, IHDR, the given chunks, IEND"""
    ihdr = struct.pack('>IIBBBBB', 1, 1, 8, 2, 0, 0, 0)
    return SIGNATURE + chunk(b'IHDR', ihdr) + b''.join(chunks) + chunk(b'IEND', b'')


def comfy_prompt(text: str = 'hello', **sampler_inputs) -> dict:
    """Small ComfyUI prompt graph with one text encoder"""
    sampler = {'sampler_name': 'euler', 'steps': 20, 'cfg': 7.0, 'seed': 42,
               'scheduler': 'normal', 'denoise': 1.0}
    sampler.update(sampler_inputs)
    return {
        '4': {'class_type': 'CheckpointLoaderSimple', 'inputs': {'ckpt_name': 'sdxl.safetensors'}},
        '6': {'class_type': 'CLIPTextEncode', 'inputs': {'text': text, 'clip': ['4', 1]}},
        '3': {'class_type': 'KSampler', 'inputs': sampler},
        '5': {'class_type': 'EmptyLatentImage', 'inputs': {'width': 832, 'height': 1216, 'batch_size': 1}},
        '9': {'class_type': 'SaveImage', 'inputs': {'filename_prefix': 'ComfyUI'}},
    }


def save_png(path, text=None, size=(64, 48), color=(200, 30, 30)) -> str:
    """Write a real image with Pillow, text maps key -> str or JSON-able value"""
    info = PngInfo()
    for key, value in (text or {}).items():
        info.add_text(key, value if isinstance(value, str) else json.dumps(value))
    Image.new('RGB', size, color).save(str(path), pnginfo=info)
    return str(path)


def save_comfy_png(path, text: str = 'hello', size=(64, 48)) -> str:
    return save_png(path, {'workflow': {'nodes': [], 'version': 0.4}, 'prompt': comfy_prompt(text)}, size=size)
