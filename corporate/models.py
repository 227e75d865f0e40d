"""Entities of the catalog and the marshmallow schemas that validate them.

Categories and carousel slides are persisted as JSON documents in the bucket;
products are never stored, they are rebuilt from the bucket's folders on
every read.
"""

import re
import unicodedata

from marshmallow import EXCLUDE, fields, validate

from corporate import ma

DEFAULT_CATEGORIES = [
    {'id': 'army', 'label': 'Army & Tactical'},
    {'id': 'police', 'label': 'Police & Security'},
    {'id': 'bar-mat', 'label': 'Bar Mats'},
    {'id': 'coasters', 'label': 'Coasters'},
    {'id': 'flash-memory', 'label': 'Flash Memory'},
    {'id': 'fridge-magnet', 'label': 'Fridge Magnets'},
    {'id': 'label', 'label': 'Labels & Tags'},
    {'id': 'lighter', 'label': 'Lighter Covers'},
    {'id': 'mobile-holder', 'label': 'Mobile Holders'},
    {'id': 'pen-accessories', 'label': 'Pen Accessories'},
    {'id': 'keychains', 'label': 'Keychains'},
]

SLIDE_TEXT_FIELDS = (
    'image',
    'tag_en', 'tag_ar',
    'title_en', 'title_ar',
    'description_en', 'description_ar',
)


def slugify(name, max_len=80):
    """Lowercase *name* and join its words with hyphens."""
    norm = unicodedata.normalize('NFKD', (name or '').strip())
    chars = []
    for ch in norm:
        if unicodedata.category(ch) == 'Mn':
            continue
        chars.append(ch if ord(ch) < 128 else '-')
    s = ''.join(chars).lower()
    s = re.sub(r'[^a-z0-9]+', '-', s)
    s = re.sub(r'-{2,}', '-', s).strip('-')
    return s[:max_len]


def make_product(category, index, key, image):
    """Build the product record for the *index*-th image of *category*."""
    return {
        'id': f"{category['id']}-{index}-{key}",
        'name': f"{category['label']} #{index + 1}",
        'category': category['id'],
        'categoryLabel': category['label'],
        'image': image,
    }


class CategorySchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.String(required=True, validate=validate.Length(min=1))
    label = fields.String(required=True, validate=validate.Length(min=1))
    label_ar = fields.String(allow_none=True)


class NewCategorySchema(ma.Schema):
    """Add-category payload; ``id`` is derived from the label when omitted."""

    class Meta:
        unknown = EXCLUDE

    id = fields.String(allow_none=True)
    label = fields.String(required=True)
    label_ar = fields.String(allow_none=True)


class ProductUploadSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    category = fields.String(required=True)


class CarouselSlideSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.String()
    image = fields.String()
    tag_en = fields.String()
    tag_ar = fields.String()
    title_en = fields.String()
    title_ar = fields.String()
    description_en = fields.String()
    description_ar = fields.String()
    order = fields.Integer(validate=validate.Range(min=0))


class ProductSchema(ma.Schema):
    id = fields.String()
    name = fields.String()
    category = fields.String()
    categoryLabel = fields.String()
    image = fields.String()


categories_schema = CategorySchema(many=True)
new_category_schema = NewCategorySchema()
upload_schema = ProductUploadSchema()
slide_schema = CarouselSlideSchema()
slides_schema = CarouselSlideSchema(many=True)
products_schema = ProductSchema(many=True)
