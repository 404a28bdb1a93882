"""
preview.py
Description: Downsized preview images for the import review screen.
Author: Eric Hiss (GitHub: EricRollei)
Contact: [eric@historic.camera, eric@rollei.us]
Version: 1.0.0
Date: [March 2025]
License: Dual License (Non-Commercial and Commercial Use)
Copyright (c) 2025 Eric Hiss. All rights reserved.

Dual License:
1. Non-Commercial Use: This software is licensed under the terms of the
   Creative Commons Attribution-NonCommercial 4.0 International License.
   To view a copy of this license, visit http://creativecommons.org/licenses/by-nc/4.0/

2. Commercial Use: For commercial use, a separate license is required.
   Please contact Eric Hiss at [eric@historic.camera, eric@rollei.us] for licensing options.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED,
INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A
PARTICULAR PURPOSE AND NONINFRINGEMENT.

Dependencies:
This code depends on several third-party libraries, each with its own license:
- Pillow: HPND License

"""
# aura_gallery/utils/preview.py
import base64
import io
from typing import Tuple

from PIL import Image

DEFAULT_PREVIEW_SIZE = 150


def create_preview(file_path: str, max_size: int = DEFAULT_PREVIEW_SIZE) -> Tuple[bytes, Tuple[int, int]]:
    """
    Create a PNG preview that fits inside max_size x max_size

    Args:
        file_path: Path to image file
        max_size: Bound for both dimensions, aspect ratio is kept

    Returns:
        tuple: (PNG bytes, (width, height) of the preview)

    Raises:
        OSError: If the file cannot be opened as an image
    """
    with Image.open(file_path) as img:
        img.thumbnail((max_size, max_size))

        # PNG cannot store CMYK and palette images lose transparency on resize
        if img.mode not in ('RGB', 'RGBA', 'L', 'LA'):
            img = img.convert('RGBA')

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        return buffer.getvalue(), img.size


def create_preview_data_uri(file_path: str, max_size: int = DEFAULT_PREVIEW_SIZE) -> str:
    """Preview encoded as a data URI for direct use in an <img> tag"""
    data, _ = create_preview(file_path, max_size)
    return "data:image/png;base64," + base64.b64encode(data).decode('ascii')
