"""AWS Lambda handler serving the race listing and user preferences."""
import json
import logging
import os
import time
from datetime import datetime
from typing import Any, Dict
from zoneinfo import ZoneInfo

from log_config import setup_logging
from processor.links import resolve_race_link
from processor.models import LinkProvider, Preferences
from processor.race_listing import RaceListing
from scraper.netkeiba_races import NetkeibaRaceScraper
from storage.preferences_store import DynamoDBPreferencesStore

RESPONSE_HEADERS = {
    'Content-Type': 'application/json; charset=utf-8',
    'Cache-Control': 'no-store'
}


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': dict(RESPONSE_HEADERS),
        'body': json.dumps(body, ensure_ascii=False)
    }


def _route(event: Dict[str, Any]):
    """Extract (method, path) from REST or HTTP API proxy events."""
    method = (
        event.get('httpMethod')
        or event.get('requestContext', {}).get('http', {}).get('method')
        or 'GET'
    )
    path = event.get('rawPath') or event.get('path') or '/races'
    return method.upper(), path.rstrip('/') or '/races'


def get_races(event: Dict[str, Any], timeout_seconds: int, max_retries: int,
              timezone: str) -> Dict[str, Any]:
    """
    Refresh the race listing.

    Always answers 200: a failed fetch comes back as an empty list with
    source "mock".
    """
    scraper = NetkeibaRaceScraper(timeout=timeout_seconds, max_retries=max_retries)
    zone = ZoneInfo(timezone)
    result = RaceListing(scraper, now=lambda: datetime.now(zone)).refresh()
    body = result.to_dict()

    provider = (event.get('queryStringParameters') or {}).get('linkProvider')
    if provider:
        try:
            link_provider = LinkProvider(provider)
        except ValueError:
            return _response(400, {'message': f"Unknown linkProvider: {provider}"})
        for race, race_dict in zip(result.races, body['races']):
            race_dict['link'] = resolve_race_link(race, link_provider)

    return _response(200, body)


def get_preferences(store: DynamoDBPreferencesStore) -> Dict[str, Any]:
    return _response(200, store.load().to_dict())


def put_preferences(event: Dict[str, Any], store: DynamoDBPreferencesStore) -> Dict[str, Any]:
    try:
        data = json.loads(event.get('body') or '{}')
    except ValueError as e:
        return _response(400, {'message': 'Invalid JSON body', 'error': str(e)})

    preferences = Preferences.from_dict(data)
    store.save(preferences)
    return _response(200, preferences.to_dict())


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the race alert API.

    Routes:
        GET /races (also scheduled invocations without a path)
        GET /preferences
        PUT|POST /preferences

    Args:
        event: API Gateway proxy or EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode, headers and JSON body
    """
    # Read configuration from environment variables
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '4'))
    max_retries = int(os.environ.get('MAX_RETRIES', '2'))
    race_timezone = os.environ.get('RACE_TIMEZONE', 'Asia/Tokyo')
    table_name = os.environ.get('PREFERENCES_TABLE', 'race-alert-preferences')
    preference_id = os.environ.get('PREFERENCES_ID', 'default')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    start_time = time.time()
    method, path = _route(event)
    logger.info(
        f"Request started: {method} {path}",
        extra={'method': method, 'path': path}
    )

    try:
        if path.endswith('/races'):
            if method != 'GET':
                return _response(405, {'message': f"Method {method} not allowed"})
            response = get_races(event, timeout_seconds, max_retries, race_timezone)

        elif path.endswith('/preferences'):
            store = DynamoDBPreferencesStore(table_name=table_name, preference_id=preference_id)
            if method == 'GET':
                response = get_preferences(store)
            elif method in ('PUT', 'POST'):
                response = put_preferences(event, store)
            else:
                return _response(405, {'message': f"Method {method} not allowed"})

        else:
            return _response(404, {'message': f"Unknown route: {path}"})

        duration = time.time() - start_time
        logger.info(
            "Request completed",
            extra={
                'status_code': response['statusCode'],
                'duration_seconds': round(duration, 2)
            }
        )
        return response

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Request failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
