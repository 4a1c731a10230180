"""Preference persistence backed by DynamoDB or a local JSON file."""
import json
import logging
import os
import time

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import Preferences

logger = logging.getLogger(__name__)


def _decode_preferences(raw, origin: str) -> Preferences:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Stored preferences in {origin} are corrupt, using defaults: {e}")
        return Preferences()
    return Preferences.from_dict(data)


class DynamoDBPreferencesStore:
    """Preferences stored as a JSON document in a DynamoDB item."""

    def __init__(self, table_name: str, preference_id: str = 'default'):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            preference_id: Hash key of the preferences item
        """
        self.table_name = table_name
        self.preference_id = preference_id
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBPreferencesStore for table: {table_name}")

    def load(self) -> Preferences:
        """
        Read stored preferences.

        A missing item, a corrupt document or an unreachable table all fall
        back to defaults.

        Returns:
            Preferences object
        """
        try:
            response = self.table.get_item(Key={'preference_id': self.preference_id})
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error reading preferences from DynamoDB: {e}")
            return Preferences()

        item = response.get('Item')
        if not item:
            logger.info(f"No stored preferences for '{self.preference_id}', using defaults")
            return Preferences()

        return _decode_preferences(item.get('settings'), self.table_name)

    def save(self, preferences: Preferences) -> None:
        """
        Write preferences.

        Raises:
            ClientError: If the write fails
        """
        item = {
            'preference_id': self.preference_id,
            'settings': json.dumps(preferences.to_dict()),
            'last_updated': int(time.time())
        }
        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing preferences to DynamoDB: {e}")
            raise
        logger.info(f"Saved preferences for '{self.preference_id}'")


class JsonFilePreferencesStore:
    """Preferences stored as a flat JSON object in a local file."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Preferences:
        try:
            with open(self.path, 'rb') as f:
                raw = f.read()
        except FileNotFoundError:
            logger.info(f"No preferences file at {self.path}, using defaults")
            return Preferences()
        except OSError as e:
            logger.error(f"Error reading preferences file {self.path}: {e}")
            return Preferences()

        return _decode_preferences(raw, self.path)

    def save(self, preferences: Preferences) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(preferences.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)
        logger.info(f"Saved preferences to {self.path}")
