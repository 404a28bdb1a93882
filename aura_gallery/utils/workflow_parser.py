"""
workflow_parser.py - Prompt Graph Parser for ComfyUI
Description: Interprets the ComfyUI "prompt" graph (node id -> class_type and inputs)
    into prompt text and structured generation parameters.
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

Prompt Graph Parser

Walks the graph in the order the JSON decoder produced it. That order
matters: when a graph has several KSampler nodes the last one wins, and
prompt segments are joined in graph order.
"""

from typing import Dict, List, Any, Optional, Tuple

from ..models.metadata import GenerationParameters
from .node_parameter_mapping import (
    TEXT_ENCODER, CHECKPOINT_LOADER, SAMPLER, DIMENSIONS, IMAGE_SAVER, DECODER,
    CHECKPOINT_INPUTS, SAMPLER_INPUTS, DIMENSION_INPUTS, TEXT_INPUT,
    LORA_LOADER_INPUTS, get_node_family
)

PROMPT_SEPARATOR = '\n\n'


class WorkflowParser:
    """Parser for extracting prompt text and generation parameters from prompt graphs"""

    def __init__(self, debug: bool = False):
        self.debug = debug

        # family -> handler; None means recognized but carries no parameters
        self.node_handlers = {
            TEXT_ENCODER: None,
            CHECKPOINT_LOADER: self._handle_checkpoint,
            SAMPLER: self._handle_sampler,
            DIMENSIONS: self._handle_dimensions,
            IMAGE_SAVER: None,
            DECODER: None,
        }

    def parse(self, prompt_graph: Dict[str, Any]) -> Tuple[Optional[str], GenerationParameters]:
        """
        Run both extraction passes over a prompt graph

        Args:
            prompt_graph: Decoded "prompt" chunk

        Returns:
            tuple: (prompt text or None, GenerationParameters)
        """
        return self.extract_prompt_text(prompt_graph), self.extract_parameters(prompt_graph)

    def extract_prompt_text(self, prompt_graph: Dict[str, Any]) -> Optional[str]:
        """
        Collect the text of every text encoder node

        Args:
            prompt_graph: Decoded prompt graph

        Returns:
            str: Segments joined by a blank line, or None if there were none
        """
        segments = []

        for node_id, node, node_type in self._iter_nodes(prompt_graph):
            if get_node_family(node_type) != TEXT_ENCODER:
                continue
            text = self._get_inputs(node).get(TEXT_INPUT)
            if isinstance(text, str) and text:
                segments.append(text)

        if not segments:
            return None
        return PROMPT_SEPARATOR.join(segments)

    def extract_parameters(self, prompt_graph: Dict[str, Any]) -> GenerationParameters:
        """
        Dispatch every node on its type and collect generation parameters

        Args:
            prompt_graph: Decoded prompt graph

        Returns:
            GenerationParameters: Extracted fields, None where the graph has no source
        """
        params = GenerationParameters()
        loras: List[str] = []

        for node_id, node, node_type in self._iter_nodes(prompt_graph):
            inputs = self._get_inputs(node)

            if node_type in LORA_LOADER_INPUTS:
                lora_name = inputs.get(LORA_LOADER_INPUTS[node_type])
                if isinstance(lora_name, str) and lora_name:
                    loras.append(lora_name)

            family = get_node_family(node_type)
            if family is None:
                params.other_nodes.append({'type': node_type, 'id': node_id})
                continue

            handler = self.node_handlers[family]
            if handler is not None:
                handler(inputs, params)

        if loras:
            params.loras = loras

        if self.debug and params.other_nodes:
            print(f"[WorkflowParser] Unrecognized nodes: "
                  f"{', '.join(node['type'] for node in params.other_nodes)}")

        return params

    def _handle_checkpoint(self, inputs: Dict[str, Any], params: GenerationParameters) -> None:
        for input_name, field_name in CHECKPOINT_INPUTS.items():
            value = inputs.get(input_name)
            if value is not None:
                setattr(params, field_name, value)

    def _handle_sampler(self, inputs: Dict[str, Any], params: GenerationParameters) -> None:
        # Whole node replaces earlier samplers, including inputs it lacks
        for input_name, field_name in SAMPLER_INPUTS.items():
            setattr(params, field_name, inputs.get(input_name))

    def _handle_dimensions(self, inputs: Dict[str, Any], params: GenerationParameters) -> None:
        params.dimensions = {name: inputs.get(name) for name in DIMENSION_INPUTS}

    def _iter_nodes(self, prompt_graph: Dict[str, Any]):
        """Yield (node_id, node, node_type) for well-formed nodes in graph order"""
        if not isinstance(prompt_graph, dict):
            return

        for node_id, node in prompt_graph.items():
            if not isinstance(node, dict):
                if self.debug:
                    print(f"[WorkflowParser] Skipping malformed node {node_id}")
                continue

            node_type = node.get('class_type', node.get('type'))
            if not isinstance(node_type, str) or not node_type:
                if self.debug:
                    print(f"[WorkflowParser] Skipping node {node_id} without a type")
                continue

            yield node_id, node, node_type

    @staticmethod
    def _get_inputs(node: Dict[str, Any]) -> Dict[str, Any]:
        inputs = node.get('inputs')
        return inputs if isinstance(inputs, dict) else {}
