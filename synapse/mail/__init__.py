"""Outbound email delivery for explicitly confirmed drafts."""
