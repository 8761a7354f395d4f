from rest_framework.throttling import AnonRateThrottle


class PublicCatalogAnonThrottle(AnonRateThrottle):
    scope = "public_catalog"


class PublicCheckoutAnonThrottle(AnonRateThrottle):
    scope = "public_checkout"
