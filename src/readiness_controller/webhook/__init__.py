"""Admission webhook: mutation logic, certificate bootstrap and CA registration."""
