"""
================================================================================
Calaveras Inventory API - Unified Test Configuration and Fixtures
================================================================================
Developed by Waqqas Hanafi
Calaveras County Health and Human Services Agency

Description:
    Shared pytest configuration and fixtures for all tests (unit, API).
    Provides a mocked data access layer, application instances wired to it,
    and temporary resources such as an LMS spreadsheet template.

Fixtures:
    - temp_dir: Temporary directory for test files
    - mock_database: MagicMock standing in for MongoDatabase
    - app_config / read_only_config: Application configurations
    - app / client: Application and TestClient over the mocked database
    - read_only_client: TestClient of an application in read-only mode
    - lms_template: Minimal .xlsx LMS template with the expected sheet
    - sample_addm_docs: Documents as returned by the addm aggregation

================================================================================
"""
import shutil
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

# Add project root to path for all tests
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from inventory.app import create_app
from inventory.config import ApiServiceConfig, Configuration, Environment
from inventory.database import MongoDatabase


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests"""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_database():
    """Data access layer with every query returning nothing"""
    database = MagicMock(spec=MongoDatabase)
    database.get_user_locations.return_value = []
    return database


@pytest.fixture
def app_config(temp_dir):
    return Configuration(
        environment=Environment.TESTING,
        api_service=ApiServiceConfig(resource_file_path=temp_dir, lms_template="template_lms.xlsx"),
    )


@pytest.fixture
def read_only_config():
    return Configuration(environment=Environment.TESTING, api_service=ApiServiceConfig(read_only=True))


@pytest.fixture
def app(app_config, mock_database):
    return create_app(app_config, database=mock_database)


@pytest.fixture
def client(app):
    """FastAPI test client; the context runs the application lifespan"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def read_only_client(read_only_config, mock_database):
    with TestClient(create_app(read_only_config, database=mock_database)) as test_client:
        yield test_client


@pytest.fixture
def lms_template(temp_dir):
    """LMS template with three header rows on the Database_&_EBS sheet"""
    wb = Workbook()
    ws = wb.active
    ws.title = "Database_&_EBS"
    ws["A1"] = "Oracle LMS"
    ws["A3"] = "Physical Server Name"
    ws["G3"] = "Formula"
    ws["G4"] = "=A4"
    path = temp_dir / "template_lms.xlsx"
    wb.save(path)
    return path


@pytest.fixture
def sample_addm_docs():
    """Projected addm documents, as the aggregation returns them"""
    return [
        {
            "_id": "5e9ff545e4c53a19c79eadfd",
            "Action": "Run SQL Tuning Advisor on the SELECT statement.",
            "Benefit": 83.34,
            "CreatedAt": datetime(2020, 4, 22, 7, 51, 1, tzinfo=timezone.utc),
            "Dbname": "ERCOLE",
            "Environment": "TST",
            "Finding": "SQL statements consuming significant database time were found.",
            "Hostname": "test-db",
            "Location": "Italy",
            "Recommendation": "SQL Tuning",
        },
        {
            "_id": "5e9ff545e4c53a19c79eadfe",
            "Action": "Look at the Top Segments by I/O report.",
            "Benefit": 12.5,
            "CreatedAt": datetime(2020, 4, 22, 7, 51, 1, tzinfo=timezone.utc),
            "Dbname": "ERCOLE",
            "Environment": "TST",
            "Finding": "Individual database segments responsible for I/O were found.",
            "Hostname": "test-db",
            "Location": "Italy",
            "Recommendation": "Segment Tuning",
        },
    ]
