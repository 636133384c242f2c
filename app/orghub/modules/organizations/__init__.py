"""Organizations (tenants): registration, profile and super-admin switching."""
