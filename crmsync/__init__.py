"""CRM sync - background sync jobs and WhatsApp notification dispatch."""

__version__ = "0.1.0"
