"""Backend du checkout multi-vendeurs (paiements fractionnés Stripe Connect)."""
