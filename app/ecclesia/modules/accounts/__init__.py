"""User accounts, role assignment and the audit log viewer."""
