"""
Request boundary for the contribution engine.

Handlers take the request's query parameters and an injected store (issue provider and
activity reader in one object) and return (status, JSON-serializable body), so any web
framework can mount them with a one-line adapter.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from errors import ContribError, MissingParameter
from normalize.util import parse_timestamp
from scoring.ranking import rank_contributors, contribution_records
from scoring.weights import WeightModel

log = logging.getLogger(__name__)


def compute_contributions(copany_id: str, store, model: Optional[WeightModel] = None, until: Optional[datetime] = None, **options) -> List[Dict[str, Any]]:
    """Ranked [{user_id, credit_score}] for a copany."""
    if not copany_id:
        raise MissingParameter('copanyId')
    return [c.to_dict() for c in rank_contributors(copany_id, store, store, model, until, **options)]


def _copany_param(params: Mapping[str, Any]) -> str:
    copany_id = params.get('copanyId') or params.get('copany_id')
    if not copany_id:
        raise MissingParameter('copanyId')
    return str(copany_id)


def _until_param(params: Mapping[str, Any]) -> Optional[datetime]:
    raw = params.get('until')
    return parse_timestamp(raw, 'until') if raw else None


def _error_body(ex: ContribError) -> Dict[str, Any]:
    body: Dict[str, Any] = {'error': 'Failed'}
    if ex.retryable:
        body['retryable'] = True
    return body


def _handle(params: Mapping[str, Any], run) -> Tuple[int, Dict[str, Any]]:
    try:
        copany_id = _copany_param(params)
    except MissingParameter as ex:
        return 400, {'error': str(ex)}
    try:
        return 200, {'contributions': run(copany_id, _until_param(params))}
    except ContribError as ex:
        log.error("contribution request for copany %s failed: %s", copany_id, ex)
        return 500, _error_body(ex)
    except Exception:
        log.exception("contribution request for copany %s failed unexpectedly", copany_id)
        return 500, {'error': 'Failed'}


def handle_contributions_request(params: Mapping[str, Any], store, model: Optional[WeightModel] = None, **options) -> Tuple[int, Dict[str, Any]]:
    """GET ?copanyId=... -> 200 {'contributions': [{user_id, credit_score}, ...]}."""
    return _handle(params, lambda copany_id, until: compute_contributions(copany_id, store, model, until, **options))


def handle_contribution_records_request(params: Mapping[str, Any], store, model: Optional[WeightModel] = None, **options) -> Tuple[int, Dict[str, Any]]:
    """GET ?copanyId=... -> 200 {'contributions': [per-closure record, ...]}."""
    return _handle(params, lambda copany_id, until: [r.to_dict() for r in contribution_records(copany_id, store, store, model, until, **options)])
