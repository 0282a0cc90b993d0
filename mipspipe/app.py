"""
mipspipe - Flask Backend

Provides REST API endpoints for a pipeline UI or an external clock driver.
The driver calls /api/step at its own cadence; every response carries the
resulting snapshot.
"""

import logging
import os

from flask import Flask, jsonify, request
from werkzeug.utils import secure_filename

from .config import SimulatorConfig, default_config, load_config
from .errors import SimulatorError
from .simulator import Simulator, program_from_text
from .trace import snapshot_to_dict, tables_to_dict

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 1 * 1024 * 1024  # 1MB max upload
app.config['DEBUG'] = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'

# Global state
_simulator: Simulator | None = None


def create_simulator(config: SimulatorConfig | None = None) -> Simulator:
    """Replace the module simulator, reading MIPSPIPE_CONFIG when no config is given."""
    global _simulator

    if config is None:
        config_path = os.environ.get('MIPSPIPE_CONFIG')
        config = load_config(config_path) if config_path else default_config()

    _simulator = Simulator(config)
    return _simulator


def get_simulator() -> Simulator:
    if _simulator is None:
        return create_simulator()
    return _simulator


def error_response(error: str, message: str, status: int = 400) -> tuple:
    """Create a standardized error response."""
    return jsonify({'error': error, 'message': message}), status


def state_response(sim: Simulator):
    return jsonify(snapshot_to_dict(sim.state))


def require_json_object() -> tuple:
    """Return (body, None) for a JSON object body, or (None, error response)."""
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        return None, error_response('Invalid request body', 'Request body must be a JSON object')
    return body, None


@app.after_request
def add_cors_headers(response):
    """Add CORS headers to all responses for local development."""
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


@app.errorhandler(400)
def bad_request(error):
    return error_response('Bad request', str(error.description), 400)


@app.errorhandler(404)
def not_found(error):
    return error_response('Not found', str(error.description), 404)


@app.errorhandler(500)
def internal_error(error):
    return error_response('Internal server error', str(error.description), 500)


@app.route('/api/state', methods=['GET'])
def get_state():
    """Get the current pipeline snapshot."""
    return state_response(get_simulator())


@app.route('/api/start', methods=['POST', 'OPTIONS'])
def start():
    """Start a run from encodings ({"instructions": [...]}) or assembly ({"source": "..."})."""
    if request.method == 'OPTIONS':
        return '', 204

    body, body_error = require_json_object()
    if body_error:
        return body_error

    sim = get_simulator()
    try:
        if 'source' in body:
            if not isinstance(body['source'], str):
                return error_response('Invalid source', "'source' must be a string")
            sim.start_source(body['source'])
        elif 'instructions' in body:
            if not isinstance(body['instructions'], list):
                return error_response('Invalid instructions', "'instructions' must be a list")
            sim.start(body['instructions'])
        else:
            return error_response('No program provided', "Request must include 'instructions' or 'source'")
    except SimulatorError as e:
        return error_response('Failed to load program', str(e))

    return state_response(sim)


@app.route('/api/step', methods=['POST', 'OPTIONS'])
def step():
    """Advance one cycle, or {"count": n} cycles."""
    if request.method == 'OPTIONS':
        return '', 204

    body, body_error = require_json_object()
    if body_error:
        return body_error

    count = body.get('count', 1)
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        return error_response('Invalid count', "'count' must be a positive integer")

    sim = get_simulator()
    for _ in range(count):
        if not sim.is_running:
            break
        sim.step()

    return state_response(sim)


@app.route('/api/pause', methods=['POST'])
def pause():
    sim = get_simulator()
    sim.pause()
    return state_response(sim)


@app.route('/api/resume', methods=['POST'])
def resume():
    sim = get_simulator()
    sim.resume()
    return state_response(sim)


@app.route('/api/reset', methods=['POST'])
def reset():
    sim = get_simulator()
    sim.reset()
    return state_response(sim)


@app.route('/api/configure', methods=['POST', 'OPTIONS'])
def configure():
    """Set {"forwarding": bool, "stalls": bool}; takes effect on the next start."""
    if request.method == 'OPTIONS':
        return '', 204

    body, body_error = require_json_object()
    if body_error:
        return body_error

    for key in ('forwarding', 'stalls'):
        if key in body and not isinstance(body[key], bool):
            return error_response('Invalid configuration', f"'{key}' must be true or false")

    sim = get_simulator()
    sim.configure(forwarding_enabled=body.get('forwarding'), stalls_enabled=body.get('stalls'))
    return state_response(sim)


@app.route('/api/hazards', methods=['GET'])
def get_hazards():
    """Get the hazard, forwarding and stall tables of the current run."""
    return jsonify(tables_to_dict(get_simulator().state))


@app.route('/api/config', methods=['GET'])
def get_config():
    """Get the configuration the simulator was created with."""
    return jsonify(get_simulator().config.to_dict())


@app.route('/api/program', methods=['POST', 'OPTIONS'])
def upload_program():
    """Upload a hex or assembly program file and start a run with it."""
    if request.method == 'OPTIONS':
        return '', 204

    if 'file' not in request.files:
        return error_response('No file provided', 'Request must include a file field')
    file = request.files['file']
    if file.filename == '':
        return error_response('No file selected', 'File field is empty')

    filename = secure_filename(file.filename)
    sim = get_simulator()
    try:
        text = file.read().decode('utf-8')
        sim.start(program_from_text(text, filename))
    except UnicodeDecodeError:
        return error_response('Failed to read program', 'Program file must be UTF-8 text')
    except SimulatorError as e:
        return error_response('Failed to load program', str(e))

    logger.info("Loaded program %s (%d instructions)", filename, len(sim.state.program))
    return state_response(sim)


def main():
    # Port 5000 is often used by macOS AirPlay
    port = int(os.environ.get('PORT', 5050))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'

    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)
    create_simulator()

    print(f"Starting mipspipe backend on port {port}")
    print(f"Debug mode: {debug}")

    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    main()
