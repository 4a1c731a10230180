"""Integration tests for Lambda handler."""
import json
import logging
import os
from datetime import datetime
from unittest.mock import Mock, patch
from zoneinfo import ZoneInfo

import pytest

from lambda_function import lambda_handler, setup_logging
from log_config import JsonFormatter
from processor.models import Grade, LinkProvider, Preferences, Race, ScraperResult

JST = ZoneInfo('Asia/Tokyo')


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'LOG_LEVEL': 'INFO',
        'TIMEOUT_SECONDS': '5',
        'MAX_RETRIES': '2',
        'RACE_TIMEZONE': 'Asia/Tokyo',
        'PREFERENCES_TABLE': 'test-race-alert-preferences',
        'PREFERENCES_ID': 'default'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def live_result():
    races = (
        Race(
            id='netkeiba-中山-11R',
            location='中山',
            race_number=11,
            race_name='中山金杯',
            grade=Grade.G3,
            start_time=datetime(2024, 1, 6, 15, 25, tzinfo=JST),
            url='../race/shutuba.html?race_id=202406010111'
        ),
        Race(
            id='netkeiba-京都-1R',
            location='京都',
            race_number=1,
            race_name='3歳未勝利',
            grade=Grade.GENERAL,
            start_time=datetime(2024, 1, 6, 15, 45, tzinfo=JST)
        ),
    )
    return ScraperResult(races=races, fetched_at=datetime(2024, 1, 6, 9, 0, tzinfo=JST), source='live')


def api_event(method='GET', path='/races', body=None, query=None):
    return {
        'httpMethod': method,
        'path': path,
        'queryStringParameters': query,
        'body': body
    }


class TestRacesRoute:
    """Test cases for the races route."""

    @patch('lambda_function.RaceListing')
    @patch('lambda_function.NetkeibaRaceScraper')
    def test_get_races(self, mock_scraper_class, mock_listing_class, mock_env,
                       mock_context, live_result):
        mock_listing_class.return_value.refresh.return_value = live_result

        response = lambda_handler(api_event(), mock_context)

        assert response['statusCode'] == 200
        assert response['headers']['Cache-Control'] == 'no-store'
        body = json.loads(response['body'])
        assert body['source'] == 'live'
        assert body['fetchedAt'] == '2024-01-06T09:00:00+09:00'
        assert [race['raceName'] for race in body['races']] == ['中山金杯', '3歳未勝利']
        assert body['races'][0] == {
            'id': 'netkeiba-中山-11R',
            'location': '中山',
            'raceNumber': 11,
            'raceName': '中山金杯',
            'grade': 'G3',
            'startTime': '2024-01-06T15:25:00+09:00',
            'url': '../race/shutuba.html?race_id=202406010111'
        }
        mock_scraper_class.assert_called_once_with(timeout=5, max_retries=2)

    @patch('lambda_function.RaceListing')
    @patch('lambda_function.NetkeibaRaceScraper')
    def test_default_fetch_budget_fits_gateway_timeout(self, mock_scraper_class, mock_listing_class,
                                                       mock_context, live_result):
        """Test a fully failing refresh with default settings ends well under 29 seconds."""
        mock_listing_class.return_value.refresh.return_value = live_result

        with patch.dict(os.environ, {}, clear=True):
            lambda_handler(api_event(), mock_context)

        kwargs = mock_scraper_class.call_args.kwargs
        timeout, retries = kwargs['timeout'], kwargs['max_retries']
        backoff = sum(2 ** attempt for attempt in range(retries - 1))
        assert 2 * (retries * timeout + backoff) < 29

    @patch('lambda_function.RaceListing')
    @patch('lambda_function.NetkeibaRaceScraper')
    def test_scheduled_event_defaults_to_races(self, mock_scraper_class, mock_listing_class,
                                               mock_env, mock_context, live_result):
        mock_listing_class.return_value.refresh.return_value = live_result

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 200
        assert len(json.loads(response['body'])['races']) == 2

    @patch('lambda_function.RaceListing')
    @patch('lambda_function.NetkeibaRaceScraper')
    def test_link_provider_adds_links(self, mock_scraper_class, mock_listing_class,
                                      mock_env, mock_context, live_result):
        mock_listing_class.return_value.refresh.return_value = live_result

        response = lambda_handler(api_event(query={'linkProvider': 'netkeiba'}), mock_context)

        races = json.loads(response['body'])['races']
        assert races[0]['link'] == 'https://race.netkeiba.com/race/shutuba.html?race_id=202406010111'
        assert races[1]['link'] is None

        response = lambda_handler(api_event(query={'linkProvider': 'jra'}), mock_context)
        races = json.loads(response['body'])['races']
        assert all(race['link'] == 'https://jra.jp/keiba/' for race in races)

    @patch('lambda_function.RaceListing')
    @patch('lambda_function.NetkeibaRaceScraper')
    def test_unknown_link_provider(self, mock_scraper_class, mock_listing_class,
                                   mock_env, mock_context, live_result):
        mock_listing_class.return_value.refresh.return_value = live_result

        response = lambda_handler(api_event(query={'linkProvider': 'elsewhere'}), mock_context)

        assert response['statusCode'] == 400

    @patch('lambda_function.NetkeibaRaceScraper')
    def test_transport_failure_returns_empty_mock(self, mock_scraper_class, mock_env, mock_context):
        """Test a failing fetch comes back as an empty mock result, not an error."""
        mock_scraper_class.return_value.fetch_race_entries.side_effect = Exception('Network error')

        response = lambda_handler(api_event(), mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['races'] == []
        assert body['source'] == 'mock'

    def test_races_rejects_other_methods(self, mock_env, mock_context):
        response = lambda_handler(api_event(method='DELETE'), mock_context)

        assert response['statusCode'] == 405


class TestPreferencesRoute:
    """Test cases for the preferences route."""

    @patch('lambda_function.DynamoDBPreferencesStore')
    def test_get_preferences(self, mock_store_class, mock_env, mock_context):
        mock_store_class.return_value.load.return_value = Preferences(g1_only_mode=True)

        response = lambda_handler(api_event(path='/preferences'), mock_context)

        assert response['statusCode'] == 200
        assert json.loads(response['body'])['g1OnlyMode'] is True
        mock_store_class.assert_called_once_with(
            table_name='test-race-alert-preferences', preference_id='default'
        )

    @patch('lambda_function.DynamoDBPreferencesStore')
    def test_put_preferences(self, mock_store_class, mock_env, mock_context):
        body = json.dumps({'heavyPrizeMode': True, 'linkProvider': 'jra', 'bogus': 1})

        response = lambda_handler(api_event('PUT', '/preferences', body=body), mock_context)

        assert response['statusCode'] == 200
        saved = mock_store_class.return_value.save.call_args[0][0]
        assert saved == Preferences(heavy_prize_mode=True, link_provider=LinkProvider.JRA)
        assert json.loads(response['body'])['linkProvider'] == 'jra'

    @patch('lambda_function.DynamoDBPreferencesStore')
    def test_put_invalid_json(self, mock_store_class, mock_env, mock_context):
        response = lambda_handler(api_event('PUT', '/preferences', body='{bad'), mock_context)

        assert response['statusCode'] == 400
        mock_store_class.return_value.save.assert_not_called()

    @patch('lambda_function.DynamoDBPreferencesStore')
    def test_storage_failure_returns_500(self, mock_store_class, mock_env, mock_context):
        mock_store_class.return_value.save.side_effect = Exception('DynamoDB unavailable')

        response = lambda_handler(api_event('PUT', '/preferences', body='{}'), mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Request failed'
        assert 'DynamoDB unavailable' in body['error']
        assert body['error_type'] == 'Exception'
        assert 'duration_seconds' in body

    def test_http_api_event_shape(self, mock_env, mock_context):
        event = {'rawPath': '/unknown', 'requestContext': {'http': {'method': 'GET'}}}

        response = lambda_handler(event, mock_context)

        assert response['statusCode'] == 404


class TestLogging:
    """Test cases for logging setup."""

    def test_setup_logging_replaces_handlers(self):
        setup_logging('DEBUG')

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)

    def test_setup_logging_invalid_level_defaults_to_info(self):
        setup_logging('NOT_A_LEVEL')

        assert logging.getLogger().level == logging.INFO

    def test_json_formatter_includes_extra_fields(self):
        record = logging.makeLogRecord({
            'name': 'test', 'levelname': 'INFO', 'msg': 'hello %s', 'args': ('world',),
            'race_id': 'netkeiba-中山-11R'
        })

        data = json.loads(JsonFormatter().format(record))

        assert data['message'] == 'hello world'
        assert data['logger'] == 'test'
        assert data['race_id'] == 'netkeiba-中山-11R'
