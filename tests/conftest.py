import pytest

from helpers import TOKEN, WWWROOT
from moodle_client import ClientConfig, MoodleClient


@pytest.fixture
def anonymous_client():
    client = MoodleClient(ClientConfig(wwwroot=WWWROOT))
    yield client
    client.close()


@pytest.fixture
def client():
    client = MoodleClient(ClientConfig(wwwroot=WWWROOT, token=TOKEN))
    yield client
    client.close()
