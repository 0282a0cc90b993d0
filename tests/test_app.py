"""
Tests for the Flask backend.
"""

import io

import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from mipspipe import app as app_module
from mipspipe.config import SimulatorConfig


@pytest.fixture
def client():
    app_module.create_simulator(SimulatorConfig(name="test"))
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client


class TestState:
    """Tests for reading simulator state."""

    def test_idle_state(self, client):
        response = client.get('/api/state')
        assert response.status_code == 200
        data = response.get_json()
        assert data['cycle'] == 0
        assert data['running'] is False

    def test_cors_headers(self, client):
        response = client.get('/api/state')
        assert response.headers['Access-Control-Allow-Origin'] == '*'

    def test_config(self, client):
        data = client.get('/api/config').get_json()
        assert data['name'] == 'test'
        assert data['memory_words'] == 32

    def test_unknown_route(self, client):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Not found'


class TestStart:
    """Tests for POST /api/start."""

    def test_start_instructions(self, client):
        response = client.post('/api/start', json={'instructions': ['20080005']})
        assert response.status_code == 200
        data = response.get_json()
        assert data['cycle'] == 1
        assert data['max_cycles'] == 5
        assert data['stages']['IF'] == 0

    def test_start_source(self, client):
        response = client.post('/api/start', json={'source': 'addi $t0, $zero, 5'})
        assert response.status_code == 200
        assert response.get_json()['instructions'][0]['text'] == 'addi $t0, $zero, 5'

    def test_start_without_program(self, client):
        response = client.post('/api/start', json={})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'No program provided'

    def test_start_bad_encoding(self, client):
        response = client.post('/api/start', json={'instructions': ['zz']})
        assert response.status_code == 400
        assert 'Invalid instruction encoding' in response.get_json()['message']

    def test_start_bad_source(self, client):
        response = client.post('/api/start', json={'source': 'bogus $t0'})
        assert response.status_code == 400
        assert 'Line 1' in response.get_json()['message']

    def test_start_non_object_body(self, client):
        response = client.post('/api/start', json=['20080005'])
        assert response.status_code == 400

    def test_options(self, client):
        assert client.options('/api/start').status_code == 204


class TestStepping:
    """Tests for stepping and run control."""

    def test_step(self, client):
        client.post('/api/start', json={'instructions': ['20080005']})
        data = client.post('/api/step').get_json()
        assert data['cycle'] == 2
        assert data['stages']['ID'] == 0

    def test_step_count_runs_to_completion(self, client):
        client.post('/api/start', json={'instructions': ['20080005']})
        data = client.post('/api/step', json={'count': 50}).get_json()
        assert data['finished'] is True
        assert data['cycle'] == 6
        assert data['registers']['$t0'] == 5

    def test_invalid_count(self, client):
        response = client.post('/api/step', json={'count': 0})
        assert response.status_code == 400

    def test_pause_and_resume(self, client):
        client.post('/api/start', json={'instructions': ['20080005']})
        assert client.post('/api/pause').get_json()['running'] is False
        assert client.post('/api/step').get_json()['cycle'] == 1
        assert client.post('/api/resume').get_json()['running'] is True

    def test_reset(self, client):
        client.post('/api/start', json={'instructions': ['20080005']})
        data = client.post('/api/reset').get_json()
        assert data['cycle'] == 0
        assert data['instructions'] == []


class TestConfigure:
    """Tests for feature toggles and hazard tables."""

    def test_configure_then_start(self, client):
        response = client.post('/api/configure', json={'forwarding': False})
        assert response.get_json()['forwarding_enabled'] is False
        client.post('/api/start', json={'instructions': ['20080005', '01084820']})
        hazards = client.get('/api/hazards').get_json()
        assert hazards['stalls'] == [0, 2]
        assert hazards['hazards'][1]['type'] == 'RAW'
        assert hazards['forwardings'] == []

    def test_configure_rejects_non_bool(self, client):
        response = client.post('/api/configure', json={'stalls': 'no'})
        assert response.status_code == 400


class TestProgramUpload:
    """Tests for POST /api/program."""

    def test_upload_hex(self, client):
        data = {'file': (io.BytesIO(b'# addi\n20080005\n'), 'prog.hex')}
        response = client.post('/api/program', data=data, content_type='multipart/form-data')
        assert response.status_code == 200
        assert response.get_json()['max_cycles'] == 5

    def test_upload_assembly(self, client):
        data = {'file': (io.BytesIO(b'addi $t0, $zero, 5\nadd $t1, $t0, $t0\n'), 'prog.s')}
        response = client.post('/api/program', data=data, content_type='multipart/form-data')
        assert response.status_code == 200
        assert len(response.get_json()['instructions']) == 2

    def test_upload_without_file(self, client):
        response = client.post('/api/program', data={}, content_type='multipart/form-data')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'No file provided'

    def test_upload_bad_program(self, client):
        data = {'file': (io.BytesIO(b'nothex\n'), 'prog.hex')}
        response = client.post('/api/program', data=data, content_type='multipart/form-data')
        assert response.status_code == 400


class TestCreateSimulator:
    """Tests for environment-driven simulator creation."""

    def test_reads_config_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "sim.yaml"
        path.write_text('name: "from-env"\nforwarding: false\n')
        monkeypatch.setenv('MIPSPIPE_CONFIG', str(path))
        sim = app_module.create_simulator()
        assert sim.config.name == 'from-env'
        assert not sim.forwarding_enabled
