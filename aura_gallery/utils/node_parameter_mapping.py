"""
node_parameter_mapping.py
Description: Maps ComfyUI node types and their inputs to GenerationParameters fields.
    This is the closed dispatch table used by the workflow parser. Adding a
    recognized node type means adding an entry here.
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

"""
# aura_gallery/utils/node_parameter_mapping.py
from typing import Dict, Optional, Tuple

# Node type families
TEXT_ENCODER = 'text_encoder'
CHECKPOINT_LOADER = 'checkpoint_loader'
SAMPLER = 'sampler'
DIMENSIONS = 'dimensions'
IMAGE_SAVER = 'image_saver'
DECODER = 'decoder'

# Recognized node types. Anything not listed here is reported in other_nodes.
NODE_TYPE_FAMILIES: Dict[str, str] = {
    'CLIPTextEncode': TEXT_ENCODER,
    'CheckpointLoaderSimple': CHECKPOINT_LOADER,
    'KSampler': SAMPLER,
    'EmptyLatentImage': DIMENSIONS,
    'SaveImage': IMAGE_SAVER,
    'VAEDecode': DECODER,
}

# node input -> GenerationParameters field
CHECKPOINT_INPUTS: Dict[str, str] = {
    'ckpt_name': 'checkpoint',
}

SAMPLER_INPUTS: Dict[str, str] = {
    'sampler_name': 'sampler',
    'steps': 'steps',
    'cfg': 'cfg',
    'seed': 'seed',
    'scheduler': 'scheduler',
    'denoise': 'denoise',
}

DIMENSION_INPUTS: Tuple[str, ...] = ('width', 'height', 'batch_size')

TEXT_INPUT = 'text'

# LoRA loaders feed the auxiliary model list. They are not in the recognized
# set above, so they are still listed in other_nodes.
LORA_LOADER_INPUTS: Dict[str, str] = {
    'LoraLoader': 'lora_name',
    'LoraLoaderModelOnly': 'lora_name',
}


def get_node_family(node_type: str) -> Optional[str]:
    """Return the family of a node type, or None if unrecognized"""
    return NODE_TYPE_FAMILIES.get(node_type)
