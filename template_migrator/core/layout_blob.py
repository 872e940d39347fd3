#!/usr/bin/env python3
"""
Layout blob patterns

The report template editor posts its layout as a URL-encoded JSON value of
the ``j_id0:f:jsonLayout`` form parameter. Everything in this module works on
that percent-encoded text; nothing is decoded before rewriting.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, Mapping, Optional, Set
from urllib.parse import unquote

from .models import ImagePolicy

logger = logging.getLogger(__name__)

LAYOUT_PARAM_NAME = 'j_id0%3Af%3AjsonLayout'

# Matches the 15 character prefix of an 18 character id; the old 3 character
# suffix stays in place after rewriting
FIELD_ID_PATTERN = re.compile(r'00N[a-zA-Z0-9]{12}')
LAYOUT_PARAM_PATTERN = re.compile(r'j_id0%3Af%3AjsonLayout[^&?]*?=[^&?]*')

# Percent-encoded <img .../> and <img ...></img>
SELF_CLOSING_IMG_PATTERN = re.compile(r'(?<=%3Cimg).*?(?=%2F%3E)')
PAIRED_IMG_PATTERN = re.compile(r'(?<=%3Cimg).*?(?=%3C%2Fimg%3E)')
EMPTY_SELF_CLOSING_IMG = '%3Cimg%2F%3E'
EMPTY_PAIRED_IMG = '%3Cimg%3C%2Fimg%3E'


def extract_layout_param(body: Optional[str]) -> Optional[str]:
    """Return the ``name=value`` layout parameter of a form body, or None"""
    if not body:
        return None
    match = LAYOUT_PARAM_PATTERN.search(body)
    return match.group(0) if match else None


def substitute_layout_param(body: str, layout_param: str) -> str:
    """Swap the layout parameter of ``body`` for ``layout_param``.

    Bodies without a layout parameter come back unchanged.
    """
    match = LAYOUT_PARAM_PATTERN.search(body)
    if not match:
        return body
    return body[:match.start()] + layout_param + body[match.end():]


def decode_layout_param(layout_param: str) -> Dict[str, Any]:
    """Decode a layout parameter into the JSON document it carries"""
    _, _, value = layout_param.partition('=')
    return json.loads(unquote(value))


def scan_field_references(blobs: Iterable[str]) -> Set[str]:
    """Collect every custom field id found in the given blobs"""
    references = set()
    for blob in blobs:
        references.update(FIELD_ID_PATTERN.findall(blob))
    return references


def strip_images(blob: str, replacement: str) -> str:
    """Empty every encoded <img> tag, then swap the empty tags for ``replacement``"""
    blob = SELF_CLOSING_IMG_PATTERN.sub('', blob)
    blob = PAIRED_IMG_PATTERN.sub('', blob)
    blob = blob.replace(EMPTY_SELF_CLOSING_IMG, replacement)
    return blob.replace(EMPTY_PAIRED_IMG, replacement)


def rewrite_layout(blob: str, id_map: Mapping[str, str],
                   image_policy: Optional[ImagePolicy] = None) -> str:
    """Replace source field ids with their target ids, then apply the image policy.

    Ids not present in ``id_map`` are left as they are. Replacement happens in
    a single pass, so a target id is never substituted a second time.
    """
    def replace(match):
        field_id = match.group(0)
        target_id = id_map.get(field_id)
        if target_id is None:
            return field_id
        logger.debug(f"Replacing field id {field_id} with {target_id}")
        return target_id

    rewritten = FIELD_ID_PATTERN.sub(replace, blob)

    if image_policy and image_policy.strip:
        rewritten = strip_images(rewritten, image_policy.replacement)

    return rewritten
