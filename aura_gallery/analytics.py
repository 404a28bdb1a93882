"""
analytics.py
Description: Corpus statistics for the gallery analytics page.
    Computes favorite rates, prompt word frequencies, per-checkpoint parameter
    summaries, time buckets, parameter histograms and LoRA usage patterns from
    a snapshot of one user's records. Nothing here writes to the database.
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
# aura_gallery/analytics.py
import datetime
import json
import math
import re
from collections import Counter, OrderedDict
from typing import Dict, Any, List, Optional, Tuple

from .handlers.base import BaseHandler
from .models.records import CorpusSnapshot, ImageRecord

STOP_WORDS = frozenset([
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'by', 'from', 'up', 'about', 'into', 'through', 'during'
])

TOP_WORDS = 50
TOP_CHECKPOINT_SAMPLERS = 3
TOP_SAMPLERS = 10
TOP_LORAS = 20
TOP_LORA_COMBINATIONS = 10
MONTHS_SHOWN = 12

# (label, min, max) inclusive on both ends, None means unbounded
PROMPT_LENGTH_RANGES = [
    ('0-50', 0, 50),
    ('51-100', 51, 100),
    ('101-200', 101, 200),
    ('201-300', 201, 300),
    ('300+', 301, None),
]

STEPS_RANGES = [
    ('1-10', 1, 10),
    ('11-20', 11, 20),
    ('21-30', 21, 30),
    ('31-50', 31, 50),
    ('50+', 51, None),
]

# (label, lower inclusive, upper exclusive), the last range is open
CFG_RANGES = [
    ('1-3', 1.0, 3.0),
    ('3-5', 3.0, 5.0),
    ('5-7', 5.0, 7.0),
    ('7-10', 7.0, 10.0),
    ('10+', 10.0, None),
]

# Sunday first
WEEKDAYS = ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat']

WORD_SPLIT = re.compile(r'\W+')


def favorite_rate(favorites: int, total: int) -> float:
    """favorites/total, 0 for an empty group"""
    return favorites / total if total > 0 else 0


def _as_number(value: Any) -> Optional[float]:
    """Numeric view of a captured input, None for links, text and booleans"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _as_key(value: Any) -> Optional[str]:
    """Grouping key for a captured name, None for missing or linked inputs"""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _lora_names(value: Any) -> List[str]:
    """
    Names from a stored LoRA list

    The list may be stored as JSON text and its items may be bare names or
    objects with a 'name' field. Unreadable lists give no names.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, list):
        return []

    names = []
    for item in value:
        if isinstance(item, str):
            names.append(item)
        elif isinstance(item, dict) and isinstance(item.get('name'), str):
            names.append(item['name'])
    return names


class AnalyticsAggregator(BaseHandler):
    """Read-and-reduce statistics over one user's corpus"""

    def compute(self, snapshot: CorpusSnapshot) -> Dict[str, Any]:
        """
        Compute every analytics section for a corpus snapshot

        Sections are independent of each other. All accumulators live only
        for this call.

        Args:
            snapshot: Records of one owner plus the reference time

        Returns:
            dict: overview, quality_metrics, prompt_analysis,
                checkpoint_deep_dive, time_insights, parameter_analysis,
                lora_patterns
        """
        now = snapshot.now or datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        records = list(snapshot.records)

        stats = {
            'overview': self.overview(records, now),
            'quality_metrics': self.quality_metrics(records),
            'prompt_analysis': self.prompt_analysis(records),
            'checkpoint_deep_dive': self.checkpoint_deep_dive(records),
            'time_insights': self.time_insights(records),
            'parameter_analysis': self.parameter_analysis(records),
            'lora_patterns': self.lora_patterns(records),
        }

        self.log(f"Computed analytics for owner {snapshot.owner_id} over {len(records)} records",
                 level="DEBUG")
        return stats

    def overview(self, records: List[ImageRecord], now: datetime.datetime) -> Dict[str, Any]:
        total = len(records)
        favorites = sum(1 for r in records if r.is_favorite)
        tag_names = {tag for r in records for tag in r.tags}

        created = [self._naive(r.created_at) for r in records if r.created_at is not None]
        days = 1
        if created:
            elapsed = self._naive(now) - min(created)
            days = max(1, elapsed.days)

        return {
            'total_images': total,
            'total_favorites': favorites,
            'total_tags': len(tag_names),
            'average_generations_per_day': total / days
        }

    def quality_metrics(self, records: List[ImageRecord]) -> Dict[str, Any]:
        """Favorite rate per checkpoint, records without a checkpoint left out"""
        groups: Dict[str, List[int]] = OrderedDict()
        for record in records:
            checkpoint = _as_key(record.node_info.checkpoint) if record.node_info else None
            if checkpoint is None:
                continue
            counts = groups.setdefault(checkpoint, [0, 0])
            counts[0] += 1
            counts[1] += 1 if record.is_favorite else 0

        rows = [
            {
                'checkpoint': checkpoint,
                'total_images': total,
                'favorites': favorites,
                'rate': favorite_rate(favorites, total)
            }
            for checkpoint, (total, favorites) in groups.items()
        ]
        rows.sort(key=lambda row: row['total_images'], reverse=True)

        return {'favorite_rate_by_checkpoint': rows}

    def prompt_analysis(self, records: List[ImageRecord]) -> Dict[str, Any]:
        prompts = [r.prompt_text for r in records if isinstance(r.prompt_text, str)]

        # Counter keeps first-seen order and most_common sorts stably
        word_freq: Counter = Counter()
        for prompt in prompts:
            for word in WORD_SPLIT.split(prompt.lower()):
                if len(word) > 2 and word not in STOP_WORDS:
                    word_freq[word] += 1

        distribution = []
        for label, low, high in PROMPT_LENGTH_RANGES:
            count = sum(1 for p in prompts if len(p) >= low and (high is None or len(p) <= high))
            distribution.append({'range': label, 'count': count})

        total_length = sum(len(p) for p in prompts)

        return {
            'common_words': [{'word': word, 'count': count}
                             for word, count in word_freq.most_common(TOP_WORDS)],
            'average_prompt_length': total_length / len(prompts) if prompts else 0,
            'prompt_length_distribution': distribution
        }

    def checkpoint_deep_dive(self, records: List[ImageRecord]) -> Dict[str, Any]:
        """
        Per-checkpoint parameter summary

        Records are first grouped by (checkpoint, sampler). Each group's mean
        steps and CFG are then folded into the checkpoint weighted by group
        size, the same way a GROUP BY checkpoint, sampler query rolls up.
        """
        groups: Dict[Tuple[str, Optional[str]], Dict[str, float]] = OrderedDict()
        for record in records:
            params = record.node_info
            checkpoint = _as_key(params.checkpoint) if params else None
            if checkpoint is None:
                continue

            group = groups.setdefault((checkpoint, _as_key(params.sampler)), {
                'count': 0, 'favorites': 0,
                'steps_sum': 0.0, 'steps_n': 0, 'cfg_sum': 0.0, 'cfg_n': 0
            })
            group['count'] += 1
            group['favorites'] += 1 if record.is_favorite else 0

            steps = _as_number(params.steps)
            if steps is not None:
                group['steps_sum'] += steps
                group['steps_n'] += 1
            cfg = _as_number(params.cfg)
            if cfg is not None:
                group['cfg_sum'] += cfg
                group['cfg_n'] += 1

        checkpoints: Dict[str, Dict[str, Any]] = OrderedDict()
        for (checkpoint, sampler), group in groups.items():
            cp = checkpoints.setdefault(checkpoint, {
                'count': 0, 'favorites': 0,
                'steps_weighted': 0.0, 'steps_weight': 0,
                'cfg_weighted': 0.0, 'cfg_weight': 0,
                'samplers': Counter()
            })
            cp['count'] += group['count']
            cp['favorites'] += group['favorites']
            if group['steps_n']:
                cp['steps_weighted'] += group['steps_sum'] / group['steps_n'] * group['count']
                cp['steps_weight'] += group['count']
            if group['cfg_n']:
                cp['cfg_weighted'] += group['cfg_sum'] / group['cfg_n'] * group['count']
                cp['cfg_weight'] += group['count']
            if sampler is not None:
                cp['samplers'][sampler] += group['count']

        rows = []
        for checkpoint, cp in checkpoints.items():
            rows.append({
                'checkpoint': checkpoint,
                'count': cp['count'],
                'avg_steps': cp['steps_weighted'] / cp['steps_weight'] if cp['steps_weight'] else None,
                'avg_cfg': cp['cfg_weighted'] / cp['cfg_weight'] if cp['cfg_weight'] else None,
                'favorite_rate': favorite_rate(cp['favorites'], cp['count']),
                'common_samplers': [name for name, _ in
                                    cp['samplers'].most_common(TOP_CHECKPOINT_SAMPLERS)]
            })
        rows.sort(key=lambda row: row['count'], reverse=True)

        return {'by_checkpoint': rows}

    def time_insights(self, records: List[ImageRecord]) -> Dict[str, Any]:
        months: Counter = Counter()
        weekdays = [0] * 7

        for record in records:
            if record.created_at is None:
                continue
            created = self._naive(record.created_at)
            months[created.strftime('%Y-%m')] += 1
            # datetime.weekday() is Monday first
            weekdays[(created.weekday() + 1) % 7] += 1

        latest = sorted(months.items(), reverse=True)[:MONTHS_SHOWN]

        return {
            'generations_by_month': [{'month': month, 'count': count}
                                     for month, count in reversed(latest)],
            'generations_by_day_of_week': [{'day': day, 'count': count}
                                           for day, count in zip(WEEKDAYS, weekdays)],
            'productivity_trend': [{'period': month, 'count': count} for month, count in latest]
        }

    def parameter_analysis(self, records: List[ImageRecord]) -> Dict[str, Any]:
        steps_buckets = [[0, 0] for _ in STEPS_RANGES]
        cfg_buckets = [[0, 0] for _ in CFG_RANGES]
        samplers: Dict[str, List[int]] = OrderedDict()

        for record in records:
            params = record.node_info
            if params is None:
                continue
            favorite = 1 if record.is_favorite else 0

            steps = _as_number(params.steps)
            if steps is not None:
                steps = int(steps)
                for index, (_, low, high) in enumerate(STEPS_RANGES):
                    if steps >= low and (high is None or steps <= high):
                        steps_buckets[index][0] += 1
                        steps_buckets[index][1] += favorite
                        break

            cfg = _as_number(params.cfg)
            if cfg is not None:
                for index, (_, low, high) in enumerate(CFG_RANGES):
                    if cfg >= low and (high is None or cfg < high):
                        cfg_buckets[index][0] += 1
                        cfg_buckets[index][1] += favorite
                        break

            sampler = _as_key(params.sampler)
            if sampler is not None:
                counts = samplers.setdefault(sampler, [0, 0])
                counts[0] += 1
                counts[1] += favorite

        top_samplers = sorted(samplers.items(), key=lambda item: item[1][0], reverse=True)

        return {
            'steps_distribution': self._histogram(STEPS_RANGES, steps_buckets),
            'cfg_distribution': self._histogram(CFG_RANGES, cfg_buckets),
            'top_samplers': [
                {'sampler': sampler, 'count': count, 'favorite_rate': favorite_rate(favorites, count)}
                for sampler, (count, favorites) in top_samplers[:TOP_SAMPLERS]
            ]
        }

    def lora_patterns(self, records: List[ImageRecord]) -> Dict[str, Any]:
        lora_freq: Counter = Counter()
        combos: Counter = Counter()

        for record in records:
            if record.node_info is None:
                continue
            names = _lora_names(record.node_info.loras)
            lora_freq.update(names)
            if len(names) > 1:
                combos[tuple(sorted(names))] += 1

        return {
            'top_loras': [{'lora': name, 'count': count}
                          for name, count in lora_freq.most_common(TOP_LORAS)],
            'common_combinations': [{'loras': list(combo), 'count': count}
                                    for combo, count in combos.most_common(TOP_LORA_COMBINATIONS)]
        }

    @staticmethod
    def _histogram(ranges, buckets: List[List[int]]) -> List[Dict[str, Any]]:
        return [
            {'range': label, 'count': count, 'favorite_rate': favorite_rate(favorites, count)}
            for (label, _, _), (count, favorites) in zip(ranges, buckets)
        ]

    @staticmethod
    def _naive(value: datetime.datetime) -> datetime.datetime:
        """Stored timestamps are naive UTC, aware values are converted"""
        if value.tzinfo is not None:
            return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return value
