"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for training
back-propagation networks.

This module provides endpoints for:
- Creating and managing networks from a topology
- Training networks in the background with real-time progress updates
- Running inputs through a network and classifying scalars by sign
- Plotting the error history of a trained network

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks

Networks live in memory only and are lost when the server stops.
"""

import os
import sys
import math
import uuid
import base64
import logging
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple

import gevent
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from backprop_net.network import (
    Network,
    DimensionMismatch,
    DEFAULT_ETA,
    DEFAULT_ALPHA
)
from backprop_net.training_data import parse_training_data

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('backprop_net').setLevel(logging.INFO)
        logging.getLogger('backprop_net.network').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

is_production = os.getenv('FLASK_ENV') == 'production'

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

ACTIVE_JOB_STATUSES = ('pending', 'training')
FINISHED_JOB_STATUSES = ('completed', 'failed')

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def is_number(value: Any) -> bool:
    """True for ints and floats, False for bools and everything else."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_examples(data: Dict[str, Any]) -> List[Tuple[List[float], List[float]]]:
    """
    Read training examples from a request body.

    Accepts either ``examples``, a list of ``[inputs, targets]`` pairs, or
    ``training_data``, the text of a training file.

    Raises:
        ValueError: If neither is given or the examples are malformed
    """
    if 'training_data' in data:
        text = data['training_data']
        if not isinstance(text, str):
            raise ValueError('training_data must be a string')
        examples = parse_training_data(text).examples
        if not examples:
            raise ValueError('training_data must contain at least one example')
        return examples

    examples = data.get('examples')
    if not isinstance(examples, list) or not examples:
        raise ValueError('examples must be a non-empty list of [inputs, targets] pairs')

    parsed = []
    for i, example in enumerate(examples):
        if not isinstance(example, (list, tuple)) or len(example) != 2:
            raise ValueError(f'example {i} must be an [inputs, targets] pair')
        inputs, targets = example
        if not isinstance(inputs, list) or not all(is_number(v) for v in inputs):
            raise ValueError(f'inputs of example {i} must be a list of numbers')
        if not isinstance(targets, list) or not all(is_number(v) for v in targets):
            raise ValueError(f'targets of example {i} must be a list of numbers')
        parsed.append(([float(v) for v in inputs], [float(v) for v in targets]))
    return parsed


def check_examples_fit(net: Network, examples: Sequence[Tuple[Sequence[float], Sequence[float]]]) -> None:
    """
    Raises:
        DimensionMismatch: If any example does not fit the network
    """
    for i, (inputs, targets) in enumerate(examples):
        if len(inputs) != net.input_size or len(targets) != net.output_size:
            raise DimensionMismatch(
                f"Example {i} has {len(inputs)} input(s) and {len(targets)} "
                f"target(s), network needs {net.input_size} and {net.output_size}"
            )


def network_summary(network_id: str, info: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-serializable description of an in-memory network."""
    net = info['network']
    return {
        'network_id': network_id,
        'topology': list(net.topology),
        'eta': net.eta,
        'alpha': net.alpha,
        'trained': info['trained'],
        'training': info['training'],
        'epochs_trained': len(info['error_history']),
        'current_error': net.current_error,
        'recent_average_error': net.recent_average_error
    }


def create_error_plot(history: Sequence[float], topology: Sequence[int]) -> str:
    """
    Create a base64-encoded PNG of the recent average error per epoch.

    Args:
        history: Recent average error after each epoch
        topology: Network topology, shown in the title

    Returns:
        Base64-encoded PNG image string
    """
    plt.figure(figsize=(5, 3))
    plt.plot(range(1, len(history) + 1), history)
    plt.title(f"Topology {list(topology)}")
    plt.xlabel('Epoch')
    plt.ylabel('Recent average error')
    plt.grid(True)

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


def cleanup_finished_training_jobs() -> int:
    """
    Remove completed or failed training jobs from memory.

    Returns:
        Number of jobs removed
    """
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in FINISHED_JOB_STATUSES
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")
    return len(jobs_to_remove)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """
    Return server status and statistics.

    Returns counts of active networks and training jobs that are
    currently in progress (status='pending' or 'training').
    """
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in ACTIVE_JOB_STATUSES
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body:
        {'topology': [2, 2, 1], 'eta': 0.15, 'alpha': 0.5, 'seed': 1}
        Only topology is required.

    Returns:
        JSON with network_id, topology, and status
    """
    data = request.get_json(silent=True) or {}
    topology = data.get('topology')
    eta = data.get('eta', DEFAULT_ETA)
    alpha = data.get('alpha', DEFAULT_ALPHA)
    seed = data.get('seed')

    if not isinstance(topology, list):
        logger.warning(f"Invalid topology requested: {topology}")
        return jsonify({'error': 'topology must be a list of layer sizes'}), 400
    if not is_number(eta) or not is_number(alpha):
        return jsonify({'error': 'eta and alpha must be numbers'}), 400
    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool) or seed < 0):
        return jsonify({'error': 'seed must be a non-negative integer'}), 400

    try:
        net = Network(topology, eta=eta, alpha=alpha, seed=seed)
    except ValueError as e:
        logger.warning(f"Rejected network creation: {e}")
        return jsonify({'error': str(e)}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {
        'network': net,
        'trained': False,
        'training': False,
        'error_history': []
    }

    logger.info(f"Created network {network_id} with topology {topology}")

    return jsonify({
        'network_id': network_id,
        'topology': list(net.topology),
        'eta': net.eta,
        'alpha': net.alpha,
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all networks held in memory."""
    networks = [
        network_summary(network_id, info)
        for network_id, info in active_networks.items()
    ]
    logger.debug(f"Listing {len(networks)} network(s)")
    return jsonify({'networks': networks}), 200


@app.route('/api/networks/<network_id>', methods=['GET'])
def get_network(network_id: str):
    """Return a network's summary and its connection weights."""
    if network_id not in active_networks:
        logger.warning(f"Details requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    info = active_networks[network_id]
    details = network_summary(network_id, info)
    details['weights'] = info['network'].weights()
    details['results'] = info['network'].get_results()
    return jsonify(details), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'examples': [[[0, 1], [1]], ...],  # or 'training_data': '<file text>'
            'epochs': 1000,
            'eta': 0.15,
            'alpha': 0.5
        }
        epochs, eta and alpha are optional.

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    info = active_networks[network_id]
    if info['training']:
        return jsonify({'error': 'Network is already training'}), 409

    net = info['network']
    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 1)
    eta = data.get('eta', net.eta)
    alpha = data.get('alpha', net.alpha)

    if not isinstance(epochs, int) or isinstance(epochs, bool) or epochs < 1:
        return jsonify({'error': 'epochs must be a positive integer'}), 400
    if not is_number(eta) or not 0.0 <= eta <= 1.0:
        return jsonify({'error': 'eta must be a number between 0.0 and 1.0'}), 400
    if not is_number(alpha) or not math.isfinite(alpha) or alpha < 0.0:
        return jsonify({'error': 'alpha must be a finite non-negative number'}), 400

    try:
        examples = parse_examples(data)
        check_examples_fit(net, examples)
    except ValueError as e:
        logger.warning(f"Rejected training data for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    job_id = str(uuid.uuid4())

    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }
    info['training'] = True

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"{len(examples)} example(s), epochs={epochs}, eta={eta}, alpha={alpha}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task,
        network_id, job_id, examples, epochs, eta, alpha
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    examples: List[Tuple[List[float], List[float]]],
    epochs: int,
    eta: float,
    alpha: float
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket as training progresses.
    """
    info = active_networks[network_id]
    net = info['network']

    def on_epoch_complete(data: Dict[str, Any]) -> None:
        """Called after each training epoch to send progress updates."""
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress
        training_jobs[job_id]['recent_average_error'] = data['recent_average_error']

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'current_error': data['current_error'],
            'recent_average_error': data['recent_average_error'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress
        })

        # Let gevent send the message immediately
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")

        def yield_to_other_tasks():
            gevent.sleep(0)

        history = net.train(
            examples,
            epochs=epochs,
            eta=eta,
            alpha=alpha,
            callback=on_epoch_complete,
            yield_func=yield_to_other_tasks
        )

        info['error_history'].extend(history)
        info['trained'] = True

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['progress'] = 100
        training_jobs[job_id]['recent_average_error'] = net.recent_average_error

        logger.info(
            f"Training completed for job {job_id}: recent average error "
            f"{net.recent_average_error:.6f}"
        )

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'recent_average_error': net.recent_average_error,
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)

    finally:
        info['training'] = False


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/training/cleanup', methods=['POST'])
def cleanup_training_jobs_endpoint():
    """Forget completed and failed training jobs."""
    removed = cleanup_finished_training_jobs()
    return jsonify({
        'deleted_count': removed,
        'message': f'Removed {removed} finished training job(s)'
    }), 200


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Run inputs through a network.

    Request body:
        {'inputs': [1.0, 0.0]}

    Returns:
        JSON with the network's results
    """
    if network_id not in active_networks:
        logger.warning(f"Prediction requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    info = active_networks[network_id]
    if info['training']:
        return jsonify({'error': 'Network is training'}), 409

    data = request.get_json(silent=True) or {}
    inputs = data.get('inputs')
    if not isinstance(inputs, list) or not all(is_number(v) for v in inputs):
        return jsonify({'error': 'inputs must be a list of numbers'}), 400

    try:
        results = info['network'].feedforward(inputs)
    except DimensionMismatch as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'inputs': inputs,
        'results': results
    }), 200


@app.route('/api/networks/<network_id>/classify', methods=['POST'])
def classify(network_id: str):
    """
    Classify a scalar by the sign of the network's first output.

    Request body:
        {'value': -0.3}

    Returns:
        JSON with 'Positive' or 'Negative' and the raw results
    """
    if network_id not in active_networks:
        logger.warning(f"Classification requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    info = active_networks[network_id]
    if info['training']:
        return jsonify({'error': 'Network is training'}), 409

    data = request.get_json(silent=True) or {}
    value = data.get('value')
    if not is_number(value):
        return jsonify({'error': 'value must be a number'}), 400

    net = info['network']
    try:
        classification = net.classify(value)
    except DimensionMismatch as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'value': value,
        'classification': classification,
        'results': net.get_results()
    }), 200


@app.route('/api/networks/<network_id>/error_plot', methods=['GET'])
def get_error_plot(network_id: str):
    """Return a PNG plot of the network's error history."""
    if network_id not in active_networks:
        logger.warning(f"Error plot requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    info = active_networks[network_id]
    if not info['error_history']:
        return jsonify({'error': 'Network has not been trained'}), 404

    return jsonify({
        'network_id': network_id,
        'epochs': len(info['error_history']),
        'image_data': create_error_plot(info['error_history'], info['network'].topology)
    }), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from memory."""
    if network_id not in active_networks:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if active_networks[network_id]['training']:
        return jsonify({'error': 'Network is training'}), 409

    del active_networks[network_id]
    logger.info(f"Deleted network {network_id}")

    return jsonify({'network_id': network_id, 'deleted': True}), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete every network that is not currently training."""
    deletable = [
        network_id for network_id, info in active_networks.items()
        if not info['training']
    ]
    for network_id in deletable:
        del active_networks[network_id]

    logger.info(
        f"Deleted {len(deletable)} network(s), "
        f"{len(active_networks)} still training"
    )

    return jsonify({
        'deleted_count': len(deletable),
        'message': f'Successfully deleted {len(deletable)} network(s)'
    }), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

def main(port: Optional[int] = None) -> None:
    """Run the server with WebSocket support."""
    is_cloud = bool(os.environ.get('PORT'))
    if port is None:
        port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_cloud,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise


if __name__ == '__main__':
    main()
