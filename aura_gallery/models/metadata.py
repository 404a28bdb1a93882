"""
metadata.py
Description: Models for generation metadata extracted from embedded workflow graphs.
    GenerationParameters is the structured blob persisted as node_info, and
    ExtractionResult is what the embedded metadata handler returns per file.
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
# aura_gallery/models/metadata.py
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import json


@dataclass
class GenerationParameters:
    """
    Structured generation parameters recovered from a prompt graph

    Every field is independently nullable. Values are kept exactly as they
    appear in the node inputs, so a missing input stays None rather than
    becoming 0 or an empty string.
    """
    checkpoint: Optional[str] = None
    sampler: Optional[str] = None
    steps: Optional[int] = None
    cfg: Optional[float] = None
    seed: Optional[int] = None
    scheduler: Optional[str] = None
    denoise: Optional[float] = None
    dimensions: Optional[Dict[str, Any]] = None
    loras: Optional[List[str]] = None
    other_nodes: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary"""
        data = {
            'checkpoint': self.checkpoint,
            'sampler': self.sampler,
            'steps': self.steps,
            'cfg': self.cfg,
            'seed': self.seed,
            'dimensions': dict(self.dimensions) if self.dimensions is not None else None,
            'scheduler': self.scheduler,
            'denoise': self.denoise,
            'other_nodes': [dict(node) for node in self.other_nodes]
        }
        # loras is optional and only written when the graph had any
        if self.loras:
            data['loras'] = list(self.loras)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GenerationParameters':
        """
        Load model from dictionary

        Accepts the legacy camelCase 'otherNodes' key written by older
        versions of the gallery.

        Args:
            data: Dictionary as produced by to_dict

        Returns:
            GenerationParameters: New instance
        """
        other_nodes = data.get('other_nodes')
        if other_nodes is None:
            other_nodes = data.get('otherNodes') or []

        dimensions = data.get('dimensions')
        if not isinstance(dimensions, dict):
            dimensions = None

        return cls(
            checkpoint=data.get('checkpoint'),
            sampler=data.get('sampler'),
            steps=data.get('steps'),
            cfg=data.get('cfg'),
            seed=data.get('seed'),
            scheduler=data.get('scheduler'),
            denoise=data.get('denoise'),
            dimensions=dimensions,
            loras=data.get('loras'),
            other_nodes=[node for node in other_nodes if isinstance(node, dict)]
        )

    def to_json(self) -> str:
        """Convert model to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: Optional[str]) -> Optional['GenerationParameters']:
        """Create model from JSON string, None for empty or unreadable input"""
        if not json_str:
            return None
        try:
            data = json.loads(json_str)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        return cls.from_dict(data)


@dataclass
class ExtractionResult:
    """Outcome of scanning one file for embedded generation metadata"""
    workflow: Any = None
    prompt: Optional[str] = None
    node_info: Optional[GenerationParameters] = None
    has_metadata: bool = False
    errors: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'ExtractionResult':
        """Result for a file without readable metadata"""
        return cls()

    @property
    def workflow_json(self) -> Optional[str]:
        """Workflow tree re-encoded for storage"""
        if self.workflow is None:
            return None
        return json.dumps(self.workflow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'workflow': self.workflow,
            'prompt': self.prompt,
            'node_info': self.node_info.to_dict() if self.node_info else None,
            'has_metadata': self.has_metadata
        }
