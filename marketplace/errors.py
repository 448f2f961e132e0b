"""
Taxonomie d'erreurs du checkout et du règlement.

Chaque erreur porte un status HTTP et un code machine; le handler enregistré
dans app_setup.exceptions les sérialise en {"error": code, "detail": message}.
- Validation (400/401/403/404): rejetées immédiatement, jamais rejouées.
- Dépendances amont (Stripe, Supabase): 500, l'appelant peut réessayer.
- Règlement après vérification de signature: 500 pour que Stripe redélivre.
"""
from typing import Optional


class MarketplaceError(Exception):
    status_code = 500
    code = "internal_error"
    default_detail = "Erreur interne"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotAuthenticated(MarketplaceError):
    status_code = 401
    code = "not_authenticated"
    default_detail = "Non authentifié"


class Forbidden(MarketplaceError):
    status_code = 403
    code = "forbidden"
    default_detail = "Accès interdit"


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"
    default_detail = "Ressource introuvable"


class ValidationFailed(MarketplaceError):
    status_code = 400
    code = "invalid_request"
    default_detail = "Requête invalide"


class EmptyCart(ValidationFailed):
    code = "empty_cart"
    default_detail = "Panier vide"


class VendorNotOnboarded(ValidationFailed):
    code = "vendor_not_onboarded"

    def __init__(self, vendor_id: str, detail: Optional[str] = None):
        self.vendor_id = vendor_id
        super().__init__(detail or f"Vendor {vendor_id} is not properly configured for payments")


class InvalidSignature(ValidationFailed):
    code = "invalid_signature"
    default_detail = "Signature webhook invalide"


class ProcessorError(MarketplaceError):
    code = "processor_error"
    default_detail = "Erreur du processeur de paiement"


class DatastoreError(MarketplaceError):
    code = "datastore_error"
    default_detail = "Erreur d'accès aux données"


class SettlementError(MarketplaceError):
    code = "settlement_failed"
    default_detail = "Échec du règlement"
