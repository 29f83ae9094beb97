"""
================================================================================
GameDiss - Lookup API Routes
================================================================================
Flask blueprint exposing the resolution engine.

ENDPOINTS:
  GET /api/games/lookup?title=...&fields=tags,reviews,players
  GET /api/games/resolve?title=...
  GET /api/catalog/status

Status mapping for /api/games/lookup:
  COMPLETED, some fields ok  -> 200 (failed fields carry their error)
  COMPLETED, all fields fail -> 503
  NOT_FOUND                  -> 404
  FAILED (catalog not ready) -> 503
================================================================================
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..rate_limit import limit_heavy, limit_light
from ..resolution import CatalogNotReady, LookupState

logger = logging.getLogger(__name__)

# Create blueprint
lookup_bp = Blueprint('lookup_api', __name__)

DEFAULT_FIELDS = ('tags', 'reviews', 'players')
MAX_TITLE_LENGTH = 200


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_runner():
    """Engine runner registered by create_app()."""
    return current_app.extensions['gamediss_engine']


def _title_arg():
    title = (request.args.get('title') or '').strip()
    if not title:
        return None, (jsonify({'error': 'Title required'}), 400)
    if len(title) > MAX_TITLE_LENGTH:
        return None, (jsonify({'error': f'Title longer than {MAX_TITLE_LENGTH} characters'}), 400)
    return title, None


def _fields_arg(available):
    raw = request.args.get('fields')
    if not raw:
        return set(DEFAULT_FIELDS) & set(available), None
    fields = {f.strip() for f in raw.split(',') if f.strip()}
    unknown = sorted(fields - set(available))
    if unknown:
        return None, (jsonify({
            'error': f"Unknown fields: {', '.join(unknown)}",
            'available_fields': sorted(available),
        }), 400)
    if not fields:
        return None, (jsonify({'error': 'No fields requested'}), 400)
    return fields, None


# =============================================================================
# LOOKUP ROUTES
# =============================================================================

@lookup_bp.route('/api/games/lookup', methods=['GET'])
@limit_heavy
def lookup_game():
    """
    Resolve a title and aggregate data about it.

    Returns:
        {
            "state": "completed",
            "title": "hollow knight silksong",
            "resolution": {"matched_id": "1030300", "confidence": 1.0, ...},
            "data": {
                "id": "1030300",
                "fields": {
                    "tags": {"value": {"tags": [...]}, "fetched_at": ..., "error": null},
                    "players": {"value": null, "fetched_at": ..., "error": "source_timeout"}
                }
            }
        }
    """
    title, error = _title_arg()
    if error:
        return error

    runner = get_runner()
    fields, error = _fields_arg(runner.engine.available_fields)
    if error:
        return error

    try:
        lookup = runner.run(lambda engine: engine.resolve_and_aggregate(title, fields))
    except TimeoutError:
        logger.error(f"Lookup timed out for '{title}'")
        return jsonify({'error': 'Lookup timed out'}), 504

    body = lookup.to_dict()

    if lookup.state is LookupState.NOT_FOUND:
        return jsonify(body), 404
    if lookup.state is LookupState.FAILED:
        return jsonify(body), 503
    if lookup.data is not None and lookup.data.all_failed:
        return jsonify(body), 503
    return jsonify(body), 200


@lookup_bp.route('/api/games/resolve', methods=['GET'])
@limit_light
def resolve_game():
    """Resolve a title to a catalog id without fetching any data."""
    title, error = _title_arg()
    if error:
        return error

    try:
        result = get_runner().run(lambda engine: engine.resolve(title))
    except CatalogNotReady as e:
        return jsonify({'error': str(e)}), 503
    except TimeoutError:
        return jsonify({'error': 'Resolution timed out'}), 504

    status = 200 if result.is_match else 404
    return jsonify(result.to_dict()), status


@lookup_bp.route('/api/catalog/status', methods=['GET'])
@limit_light
def catalog_status():
    """Catalog readiness, version, size and cache statistics."""
    runner = get_runner()
    stats = runner.run(_collect_stats)
    stats['available_fields'] = sorted(runner.engine.available_fields)
    status = 200 if stats['catalog']['ready'] else 503
    return jsonify(stats), status


async def _collect_stats(engine):
    # Read on the engine loop so counters are not read mid-update
    return engine.stats()
