"""Entry reconciliation and presentation."""

from .entry_view import EntryView, build_entry_view, build_entry_views, find_by_slug, slugify_url, sort_entries
from .reconciler import (
    EntryReconciler,
    ReconcileOutcome,
    ReconcileResult,
    check_entry_changed,
    derive_content,
    derive_guid,
    derive_summary,
    get_media,
    resolve_media_url,
)

__all__ = [
    'EntryView',
    'build_entry_view',
    'build_entry_views',
    'find_by_slug',
    'slugify_url',
    'sort_entries',
    'EntryReconciler',
    'ReconcileOutcome',
    'ReconcileResult',
    'check_entry_changed',
    'derive_content',
    'derive_guid',
    'derive_summary',
    'get_media',
    'resolve_media_url',
]
