import logging

from django.db import transaction

from apps.audit.services import record_audit
from apps.storefront.models import SiteSetting

logger = logging.getLogger(__name__)

DEFAULT_SITE_SETTINGS = {
    "hero_banner": {
        "value": "https://images.unsplash.com/photo-1592945403244-b3fbafd7f539?auto=format&fit=crop&q=80&w=2000",
        "category": "Home",
        "description": "Banner principal del Home",
    },
    "hero_title": {
        "value": "Descubre tu Legado Personal",
        "category": "Home",
        "description": "Titulo principal del Home",
    },
    "about_hero_image": {
        "value": "https://images.unsplash.com/photo-1592945403244-b3fbafd7f539?auto=format&fit=crop&q=80&w=2000",
        "category": "Nosotros",
        "description": "Fondo de cabecera Nosotros",
    },
    "about_story_image": {
        "value": "https://images.unsplash.com/photo-1541643600914-78b084683601?auto=format&fit=crop&q=80&w=1000",
        "category": "Nosotros",
        "description": "Imagen de historia",
    },
    "about_story_title": {
        "value": "Mas que una Fragancia, un Legado",
        "category": "Nosotros",
        "description": "Titulo de historia",
    },
    "about_story_description": {
        "value": "En Luxessence, entendemos que el perfume no es solo un aroma...",
        "category": "Nosotros",
        "description": "Descripcion de historia",
    },
}


def public_settings():
    """Every known key with its stored value, falling back to the shipped default."""
    values = {key: entry["value"] for key, entry in DEFAULT_SITE_SETTINGS.items()}
    values.update(SiteSetting.objects.values_list("key", "value"))
    return values


@transaction.atomic
def upsert_settings(*, entries, actor):
    """Create or update settings by key. Category and description keep their defaults when omitted."""
    changed = {}
    for entry in entries:
        key = entry["key"]
        defaults = DEFAULT_SITE_SETTINGS.get(key, {})
        setting = SiteSetting.objects.select_for_update().filter(pk=key).first()
        if setting is None:
            setting = SiteSetting(
                key=key,
                category=defaults.get("category", ""),
                description=defaults.get("description", ""),
            )
        setting.value = entry["value"]
        if entry.get("category"):
            setting.category = entry["category"]
        if entry.get("description"):
            setting.description = entry["description"]
        setting.save()
        changed[key] = setting.value

    record_audit(
        actor=actor,
        action="storefront.settings.upsert",
        entity_type="site_setting",
        entity_id="site_settings",
        payload={"keys": sorted(changed)},
    )
    logger.info("Updated site settings %s", ", ".join(sorted(changed)))
    return SiteSetting.objects.filter(pk__in=changed).order_by("category", "key")
