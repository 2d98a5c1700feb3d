"""Konfiguration und Logging der E-Rechnungs-Engine."""
