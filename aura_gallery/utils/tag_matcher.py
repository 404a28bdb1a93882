"""
tag_matcher.py
Description: Turns free-form vision model descriptions into gallery tags.
    The classifier is asked to describe clothing, setting, pose, mood and a
    content rating. Each labelled line of its answer is matched against a
    fixed phrase table, and exactly one rating tag always results.
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
# aura_gallery/utils/tag_matcher.py
import re
from typing import Dict, List, Optional, Tuple

ANALYSIS_PROMPT = """Analyze this portrait photo for content categorization.

CLOTHING: What is the person wearing? State explicitly: fully clothed, lingerie, bikini, underwear, topless, or nude.

SETTING: Where was this taken? (bedroom, bathroom, outdoor, studio, kitchen, etc.)

POSE: How is the person positioned? (standing, sitting, lying down, kneeling, etc.)

MOOD: What's the atmosphere? (professional, casual, playful, sultry, intimate, etc.)

CONTENT RATING:
- PG: Fully clothed, no suggestive content
- R: Revealing clothing, partial nudity (topless/lingerie), or suggestive poses
- X-Rated: Full nudity or highly explicit content

Provide clear, single-word or short-phrase tags for each category."""

RATING_X = 'Rated: X'
RATING_R = 'Rated: R'
RATING_PG = 'Rated: PG'

# category label -> [(phrases that trigger the tag, tag)]
CATEGORY_RULES: Dict[str, List[Tuple[Tuple[str, ...], str]]] = {
    'clothing': [
        (('lingerie',), 'lingerie'),
        (('bikini',), 'bikini'),
        (('underwear',), 'underwear'),
        (('topless',), 'topless'),
        (('nude',), 'nude'),
        (('fully clothed', 'dressed'), 'fully clothed'),
        (('casual',), 'casual'),
        (('formal',), 'formal'),
    ],
    'setting': [
        (('bedroom',), 'bedroom'),
        (('bathroom',), 'bathroom'),
        (('outdoor',), 'outdoor'),
        (('studio',), 'studio'),
        (('kitchen',), 'kitchen'),
        (('living room',), 'living room'),
    ],
    'pose': [
        (('standing',), 'standing'),
        (('sitting',), 'sitting'),
        (('lying', 'laying'), 'lying down'),
        (('kneeling',), 'kneeling'),
    ],
    'mood': [
        (('professional',), 'professional'),
        (('casual',), 'casual'),
        (('playful',), 'playful'),
        (('sultry',), 'sultry'),
        (('intimate',), 'intimate'),
    ],
}

# Checked in order, most severe first
RATING_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (('x-rated', 'x rated', 'explicit'), RATING_X),
    (('r-rated', 'r rated', ' r ', ' r:'), RATING_R),
    (('pg',), RATING_PG),
]

# Implied rating when the answer has no rating line, most severe first
CLOTHING_RATINGS: List[Tuple[Tuple[str, ...], str]] = [
    (('nude',), RATING_X),
    (('topless', 'lingerie', 'underwear'), RATING_R),
]

LABEL_PATTERN = re.compile(r'content rating:|clothing:|setting:|pose:|mood:|rating:', re.IGNORECASE)


def _line_value(line: str) -> str:
    """Strip category labels from a line"""
    return LABEL_PATTERN.sub('', line).strip()


def _rating_for_line(line: str) -> Optional[str]:
    for phrases, rating in RATING_RULES:
        if any(phrase in line for phrase in phrases):
            return rating
    return None


def parse_classifier_response(ai_text: str) -> List[str]:
    """
    Match a vision model answer against the tag vocabulary

    Args:
        ai_text: Free-form description returned by the classifier

    Returns:
        list: De-duplicated tags in first-seen order, always ending up with
            exactly one rating tag
    """
    tags: List[str] = []
    explicit_ratings: List[str] = []

    for line in (ai_text or '').lower().split('\n'):
        for category, rules in CATEGORY_RULES.items():
            if f"{category}:" not in line:
                continue
            value = _line_value(line)
            for phrases, tag in rules:
                if any(phrase in value for phrase in phrases):
                    tags.append(tag)

        if 'rating:' in line:
            rating = _rating_for_line(line)
            if rating:
                explicit_ratings.append(rating)

    if explicit_ratings:
        # One rating only, even if the model answered twice
        tags.append(explicit_ratings[0])
    else:
        tags.append(implied_rating(tags))

    return list(dict.fromkeys(tags))


def implied_rating(tags: List[str]) -> str:
    """Most severe rating implied by clothing tags, PG when unclear"""
    for clothing, rating in CLOTHING_RATINGS:
        if any(tag in clothing for tag in tags):
            return rating
    return RATING_PG


def tag_category(tag: str) -> Optional[str]:
    """
    Category of a vocabulary tag

    'casual' appears in both clothing and mood and resolves to clothing.
    """
    if tag in (RATING_X, RATING_R, RATING_PG):
        return 'rating'
    for category, rules in CATEGORY_RULES.items():
        if any(rule_tag == tag for _, rule_tag in rules):
            return category
    return None
