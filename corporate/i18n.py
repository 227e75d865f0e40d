"""Bilingual (English/Arabic) messages returned by the JSON API.

Page copy lives with the front-end; this module only covers the strings the
API itself produces so the admin dashboard can show them in either language.
"""

from __future__ import annotations

from typing import Dict

AVAILABLE_LANGUAGES: Dict[str, str] = {
    "en": "English",
    "ar": "العربية",
}

BASE_TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "auth.login.success": "Welcome back!",
        "auth.login.error": "Invalid password",
        "auth.logout.success": "Signed out successfully.",
        "category.created": "Category created successfully.",
        "category.deleted": "Category deleted successfully.",
        "product.uploaded": "Image uploaded successfully.",
        "product.deleted": "Image deleted successfully.",
        "carousel.saved": "Slide saved successfully.",
        "carousel.reordered": "Slides reordered successfully.",
        "carousel.deleted": "Slide deleted successfully.",
        "catalog.error": "Failed to fetch products",
        "error.validation": "Invalid input.",
        "error.conflict": "This item already exists.",
        "error.not_found": "Item not found.",
        "error.unauthorized": "Unauthorized",
        "error.storage": "Storage service error.",
        "error.internal": "Internal server error",
    },
    "ar": {
        "auth.login.success": "مرحباً بعودتك!",
        "auth.login.error": "كلمة المرور غير صحيحة",
        "auth.logout.success": "تم تسجيل الخروج بنجاح.",
        "category.created": "تم إنشاء الفئة بنجاح.",
        "category.deleted": "تم حذف الفئة بنجاح.",
        "product.uploaded": "تم رفع الصورة بنجاح.",
        "product.deleted": "تم حذف الصورة بنجاح.",
        "carousel.saved": "تم حفظ الشريحة بنجاح.",
        "carousel.reordered": "تمت إعادة ترتيب الشرائح بنجاح.",
        "carousel.deleted": "تم حذف الشريحة بنجاح.",
        "catalog.error": "تعذر تحميل المنتجات",
        "error.validation": "البيانات المدخلة غير صالحة.",
        "error.conflict": "هذا العنصر موجود بالفعل.",
        "error.not_found": "العنصر غير موجود.",
        "error.unauthorized": "غير مصرح",
        "error.storage": "خطأ في خدمة التخزين.",
        "error.internal": "خطأ داخلي في الخادم",
    },
}


def normalise_lang(candidate) -> str:
    if not candidate:
        return "en"
    normalised = str(candidate).strip().lower()[:2]
    if normalised in AVAILABLE_LANGUAGES:
        return normalised
    return "en"


def get_translation(key: str, lang: str, default: str | None = None) -> str:
    """Return the translation for *key* in *lang* or fall back to English."""
    if lang not in AVAILABLE_LANGUAGES:
        lang = "en"
    lang_bucket = BASE_TRANSLATIONS.get(lang, {})
    if key in lang_bucket:
        return lang_bucket[key]
    fallback = BASE_TRANSLATIONS.get("en", {}).get(key)
    if fallback is not None:
        return fallback
    return default if default is not None else key


def serialise_translations() -> Dict[str, Dict[str, str]]:
    """Return the message table for every supported language, ready for JSON."""
    return BASE_TRANSLATIONS
