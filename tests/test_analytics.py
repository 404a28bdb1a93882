from datetime import datetime, timedelta, timezone

from aura_gallery.analytics import AnalyticsAggregator, favorite_rate
from aura_gallery.models.metadata import GenerationParameters
from aura_gallery.models.records import CorpusSnapshot, ImageRecord

NOW = datetime(2025, 3, 31, 12, 0, 0)


def make_record(image_id, favorite=False, tags=(), prompt=None, created=None, node_info=True, **params):
    return ImageRecord(
        id=image_id,
        owner_id=1,
        filepath=f'/images/{image_id}.png',
        filename=f'{image_id}.png',
        prompt_text=prompt,
        node_info=GenerationParameters(**params) if node_info else None,
        created_at=created or datetime(2025, 3, 1, 10, 0, 0),
        is_favorite=favorite,
        tags=list(tags),
    )


def compute(records, now=NOW):
    return AnalyticsAggregator().compute(CorpusSnapshot(owner_id=1, records=records, now=now))


def test_empty_corpus_has_zero_rates():
    stats = compute([])

    assert stats['overview'] == {
        'total_images': 0,
        'total_favorites': 0,
        'total_tags': 0,
        'average_generations_per_day': 0
    }
    assert stats['quality_metrics']['favorite_rate_by_checkpoint'] == []
    assert stats['prompt_analysis']['average_prompt_length'] == 0
    assert stats['prompt_analysis']['common_words'] == []
    for bucket in stats['parameter_analysis']['steps_distribution'] + stats['parameter_analysis']['cfg_distribution']:
        assert bucket['count'] == 0
        assert bucket['favorite_rate'] == 0
    assert [d['count'] for d in stats['time_insights']['generations_by_day_of_week']] == [0] * 7
    assert stats['lora_patterns'] == {'top_loras': [], 'common_combinations': []}
    assert favorite_rate(0, 0) == 0


def test_overview_counts():
    records = [
        make_record(1, favorite=True, tags=['cat', 'night'], created=datetime(2025, 3, 1)),
        make_record(2, tags=['cat'], created=datetime(2025, 3, 11)),
        make_record(3, favorite=True, created=datetime(2025, 3, 21)),
    ]
    overview = compute(records, now=datetime(2025, 3, 31))['overview']

    assert overview['total_images'] == 3
    assert overview['total_favorites'] == 2
    assert overview['total_tags'] == 2
    assert overview['average_generations_per_day'] == 3 / 30


def test_same_day_corpus_counts_as_one_day():
    overview = compute([make_record(1), make_record(2)], now=datetime(2025, 3, 1, 18, 0))['overview']
    assert overview['average_generations_per_day'] == 2


def test_favorite_rate_by_checkpoint_skips_missing_checkpoint():
    records = [
        make_record(1, checkpoint='a.safetensors', favorite=True),
        make_record(2, checkpoint='b.safetensors'),
        make_record(3, checkpoint='b.safetensors', favorite=True),
        make_record(4, checkpoint='b.safetensors'),
        make_record(5, favorite=True),
        make_record(6, node_info=False, favorite=True),
    ]
    rows = compute(records)['quality_metrics']['favorite_rate_by_checkpoint']

    assert rows == [
        {'checkpoint': 'b.safetensors', 'total_images': 3, 'favorites': 1, 'rate': 1 / 3},
        {'checkpoint': 'a.safetensors', 'total_images': 1, 'favorites': 1, 'rate': 1.0},
    ]


def test_word_frequency_filters_and_orders():
    records = [
        make_record(1, prompt='A castle on the hill, castle walls'),
        make_record(2, prompt='hill with fog_lights and an owl'),
        make_record(3, prompt=None),
    ]
    words = compute(records)['prompt_analysis']['common_words']

    assert words == [
        {'word': 'castle', 'count': 2},
        {'word': 'hill', 'count': 2},
        {'word': 'walls', 'count': 1},
        {'word': 'fog_lights', 'count': 1},
        {'word': 'owl', 'count': 1},
    ]


def test_word_frequency_keeps_top_fifty():
    prompt = ' '.join(f'word{i:03d}' for i in range(80))
    words = compute([make_record(1, prompt=prompt)])['prompt_analysis']['common_words']
    assert len(words) == 50
    assert words[0]['word'] == 'word000'


def test_prompt_length_buckets():
    records = [make_record(i, prompt='x' * length)
               for i, length in enumerate([0, 50, 51, 100, 200, 300, 301, 2000])]
    analysis = compute(records)['prompt_analysis']

    assert [b['count'] for b in analysis['prompt_length_distribution']] == [2, 2, 1, 1, 2]
    assert analysis['average_prompt_length'] == (0 + 50 + 51 + 100 + 200 + 300 + 301 + 2000) / 8


def test_checkpoint_deep_dive_weights_sampler_groups():
    records = [
        make_record(1, checkpoint='a', sampler='euler', steps=20, cfg=7, favorite=True),
        make_record(2, checkpoint='a', sampler='euler', steps=30, cfg=8),
        make_record(3, checkpoint='a', sampler='dpmpp_2m', steps=40),
        make_record(4, checkpoint='b', sampler='ddim', steps=10, cfg=5),
    ]
    rows = compute(records)['checkpoint_deep_dive']['by_checkpoint']

    a, b = rows
    assert a['checkpoint'] == 'a'
    assert a['count'] == 3
    assert a['avg_steps'] == (25 * 2 + 40 * 1) / 3
    assert a['avg_cfg'] == 7.5
    assert a['favorite_rate'] == 1 / 3
    assert a['common_samplers'] == ['euler', 'dpmpp_2m']
    assert b == {'checkpoint': 'b', 'count': 1, 'avg_steps': 10.0, 'avg_cfg': 5.0,
                 'favorite_rate': 0, 'common_samplers': ['ddim']}


def test_deep_dive_without_numeric_parameters():
    rows = compute([make_record(1, checkpoint='a', steps=['3', 0])])['checkpoint_deep_dive']['by_checkpoint']
    assert rows[0]['avg_steps'] is None
    assert rows[0]['avg_cfg'] is None
    assert rows[0]['common_samplers'] == []


def test_time_buckets():
    records = [
        # 2025-03-02 is a Sunday, 2025-03-04 a Tuesday, 2025-01-15 a Wednesday
        make_record(1, created=datetime(2025, 3, 2, 9, 0)),
        make_record(2, created=datetime(2025, 3, 4, 9, 0)),
        make_record(3, created=datetime(2025, 3, 4, 23, 0)),
        make_record(4, created=datetime(2025, 1, 15, 12, 0)),
    ]
    time_insights = compute(records)['time_insights']

    assert time_insights['generations_by_month'] == [
        {'month': '2025-01', 'count': 1},
        {'month': '2025-03', 'count': 3},
    ]
    assert time_insights['productivity_trend'] == [
        {'period': '2025-03', 'count': 3},
        {'period': '2025-01', 'count': 1},
    ]
    days = time_insights['generations_by_day_of_week']
    assert [d['day'] for d in days] == ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat']
    assert [d['count'] for d in days] == [1, 0, 2, 1, 0, 0, 0]


def test_only_latest_twelve_months():
    records = [make_record(i, created=datetime(2024 + (i - 1) // 12, (i - 1) % 12 + 1, 5))
               for i in range(1, 15)]
    months = compute(records)['time_insights']['generations_by_month']

    assert len(months) == 12
    assert months[0]['month'] == '2024-03'
    assert months[-1]['month'] == '2025-02'


def test_parameter_buckets_and_boundaries():
    records = [
        make_record(1, steps=10, cfg=1.0, favorite=True),
        make_record(2, steps=11, cfg=3.0),
        make_record(3, steps=50, cfg=4.99),
        make_record(4, steps=51, cfg=7, favorite=True),
        make_record(5, steps=150, cfg=10),
        make_record(6, steps=0, cfg=0.5),
        make_record(7, steps='25', cfg='6.5'),
    ]
    analysis = compute(records)['parameter_analysis']

    steps = {b['range']: b for b in analysis['steps_distribution']}
    assert [b['count'] for b in analysis['steps_distribution']] == [1, 1, 1, 1, 2]
    assert steps['1-10']['favorite_rate'] == 1.0
    assert steps['50+']['favorite_rate'] == 0.5

    cfg = {b['range']: b['count'] for b in analysis['cfg_distribution']}
    assert cfg == {'1-3': 1, '3-5': 2, '5-7': 1, '7-10': 1, '10+': 1}


def test_top_samplers_with_favorite_rate():
    records = [make_record(i, sampler='euler', favorite=i == 0) for i in range(4)]
    records += [make_record(10 + i, sampler=f's{i}') for i in range(12)]
    samplers = compute(records)['parameter_analysis']['top_samplers']

    assert len(samplers) == 10
    assert samplers[0] == {'sampler': 'euler', 'count': 4, 'favorite_rate': 0.25}


def test_lora_combinations_ignore_order():
    records = [
        make_record(1, loras=['X', 'Y']),
        make_record(2, loras=['Y', 'X']),
        make_record(3, loras='["X", {"name": "Z"}]'),
        make_record(4, loras='[broken json'),
        make_record(5, loras=['X']),
        make_record(6, loras={'not': 'a list'}),
    ]
    patterns = compute(records)['lora_patterns']

    assert patterns['top_loras'] == [
        {'lora': 'X', 'count': 4},
        {'lora': 'Y', 'count': 2},
        {'lora': 'Z', 'count': 1},
    ]
    assert patterns['common_combinations'] == [
        {'loras': ['X', 'Y'], 'count': 2},
        {'loras': ['X', 'Z'], 'count': 1},
    ]


def test_aggregation_state_does_not_leak_between_calls():
    aggregator = AnalyticsAggregator()
    snapshot = CorpusSnapshot(owner_id=1, records=[make_record(1, loras=['X', 'Y'], prompt='castle')], now=NOW)

    first = aggregator.compute(snapshot)
    second = aggregator.compute(snapshot)
    assert first == second


def test_time_buckets_use_utc_for_aware_timestamps():
    # Saturday 02:00 at UTC+5 is Friday 21:00 UTC, still in February
    created = datetime(2025, 3, 1, 2, 0, tzinfo=timezone(timedelta(hours=5)))
    time = compute([make_record(1, created=created)])['time_insights']

    assert time['generations_by_month'] == [{'month': '2025-02', 'count': 1}]
    assert [d['count'] for d in time['generations_by_day_of_week']] == [0, 0, 0, 0, 0, 1, 0]
