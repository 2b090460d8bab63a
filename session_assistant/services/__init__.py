"""Services Layer — imperative shell around the pure core (AI gateway, wizard orchestration)."""
