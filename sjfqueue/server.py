"""
HTTP API server for the job scheduler.

This module provides a Flask-based REST API for submitting and listing
jobs, plus a websocket push channel that streams every job mutation.
Observers seed their view from GET /jobs and then apply pushed jobs as
upserts keyed by id.
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_sock import Sock
from simple_websocket import ConnectionClosed
from datetime import datetime, timezone
from typing import Dict, Any
import json
import logging

from .types import SchedulerConfig
from .errors import InvalidInput, NotFound, SubscriptionDropped
from .algorithm import calculate_scheduling_metrics
from .feed import ChangeFeed, Subscription
from .store import JobStore
from .executor import Executor
from .scheduler import JobScheduler


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(levelname)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

EXTENSION_KEY = 'sjfqueue'


def ready_frame(feed: ChangeFeed) -> Dict[str, Any]:
    """Marker telling a websocket client its subscription is live."""
    return {'type': 'ready', 'sequence': feed.last_sequence}


def stream_job_events(ws, subscription: Subscription, poll_interval: float) -> int:
    """
    Forward change feed events to one websocket until either side closes.

    Each event is sent as a single Job JSON text frame, in feed order.

    Args:
        ws: Connected websocket (``send``, ``close`` and ``connected``)
        subscription: Feed subscription owned by this connection
        poll_interval: Seconds to wait for an event before re-checking the socket

    Returns:
        Number of events sent
    """
    sent = 0
    while ws.connected:
        try:
            event = subscription.get(timeout=poll_interval)
        except SubscriptionDropped:
            logger.warning(f"Closing websocket for dropped subscriber {subscription.subscription_id}")
            ws.close(reason=1008, message='subscriber fell behind; re-sync required')
            break
        if event is None:
            continue
        try:
            ws.send(json.dumps(event.job.to_dict()))
        except ConnectionClosed:
            break
        sent += 1
    return sent


def create_app(config: Dict[str, Any] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Optional configuration dictionary

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    # Default configuration
    app.config.update({
        'TESTING': False,
        'WORKER_COUNT': 1,
        'SUBSCRIBER_QUEUE_SIZE': 1000,
        'POLL_INTERVAL': 0.5,
        'CORS_ORIGINS': ['http://localhost:3000'],
        'START_SCHEDULER': True,
    })

    # SJF_WORKER_COUNT=4 etc.
    app.config.from_prefixed_env('SJF')

    # Apply custom config
    if config:
        app.config.update(config)

    scheduler_config = SchedulerConfig(
        worker_count=app.config['WORKER_COUNT'],
        subscriber_queue_size=app.config['SUBSCRIBER_QUEUE_SIZE'],
        poll_interval=app.config['POLL_INTERVAL'],
    )

    feed = ChangeFeed(max_queue_size=scheduler_config.subscriber_queue_size)
    store = JobStore(feed=feed)
    executor = Executor(store, worker_count=scheduler_config.worker_count)
    scheduler = JobScheduler(store, executor)

    app.extensions[EXTENSION_KEY] = {
        'config': scheduler_config,
        'feed': feed,
        'store': store,
        'scheduler': scheduler,
    }

    CORS(app, origins=app.config['CORS_ORIGINS'])
    sock = Sock(app)

    @app.route('/health', methods=['GET'])
    def health():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'service': 'sjf-job-scheduler',
            'version': '0.1.0',
            'scheduler': scheduler.state,
            'subscribers': feed.subscriber_count,
            'timestamp': datetime.now(timezone.utc).isoformat()
        })

    @app.route('/jobs', methods=['GET'])
    def list_jobs():
        """List every job in submission order."""
        return jsonify([job.to_dict() for job in store.list()])

    @app.route('/jobs', methods=['POST'])
    def create_job():
        """
        Submit a new job.

        Request body:
        {
            "name": "resize images",
            "duration": 2000000000
        }

        Response (201): the created job, status "Pending".
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InvalidInput('Request body must be a JSON object')

        job = store.create(data.get('name'), data.get('duration'))
        return jsonify(job.to_dict()), 201

    @app.route('/jobs/<job_id>', methods=['GET'])
    def get_job(job_id):
        """Get one job by id."""
        try:
            key = int(job_id)
        except ValueError:
            raise NotFound(job_id)
        return jsonify(store.get(key).to_dict())

    @app.route('/policy', methods=['GET'])
    def get_policy():
        """Get current scheduling policy."""
        return jsonify({
            'policy': scheduler_config.policy,
            'preemptive': False,
            'worker_count': scheduler_config.worker_count,
            'subscriber_queue_size': scheduler_config.subscriber_queue_size,
        })

    @app.route('/stats', methods=['GET'])
    def get_stats():
        """Scheduling metrics over every job seen so far."""
        metrics = calculate_scheduling_metrics(store.list())
        metrics['dispatched'] = len(scheduler.dispatch_order)
        metrics['last_event_sequence'] = feed.last_sequence
        return jsonify(metrics)

    @sock.route('/ws')
    def job_updates(ws):
        """
        Push one Job JSON object per mutation, from the join point onward.

        The first frame is a ready marker sent once the subscription
        exists; a snapshot pulled after it misses no later mutation.
        """
        subscription = feed.subscribe()
        try:
            ws.send(json.dumps(ready_frame(feed)))
            sent = stream_job_events(ws, subscription, scheduler_config.poll_interval)
            logger.info(f"Websocket {subscription.subscription_id} closed after {sent} events")
        except ConnectionClosed:
            logger.info(f"Websocket {subscription.subscription_id} closed before it was ready")
        finally:
            feed.unsubscribe(subscription)

    @app.errorhandler(InvalidInput)
    def invalid_input(error):
        """Handle rejected job submissions."""
        logger.info(f"Rejected job submission: {error}")
        return jsonify({'error': str(error)}), 400

    @app.errorhandler(NotFound)
    def job_not_found(error):
        """Handle lookups of unknown jobs."""
        return jsonify({'error': str(error)}), 404

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 errors."""
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {error}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500

    if app.config['START_SCHEDULER']:
        scheduler.start()

    return app


def run_server(host: str = '0.0.0.0', port: int = 8080, debug: bool = False):
    """
    Run the scheduler HTTP server.

    Args:
        host: Host to bind to
        port: Port to listen on
        debug: Enable debug mode
    """
    logger.info("=" * 50)
    logger.info("  SJF Job Scheduler Server (Python)")
    logger.info("=" * 50)
    logger.info("")
    logger.info(f"Starting server on {host}:{port}")
    logger.info("")
    logger.info("Endpoints:")
    logger.info(f"  POST {host}:{port}/jobs   - Submit a job")
    logger.info(f"  GET  {host}:{port}/jobs   - List jobs")
    logger.info(f"  WS   {host}:{port}/ws     - Job updates")
    logger.info(f"  GET  {host}:{port}/health - Health check")
    logger.info(f"  GET  {host}:{port}/policy - Get policy")
    logger.info(f"  GET  {host}:{port}/stats  - Scheduling metrics")
    logger.info("")

    app = create_app()
    try:
        # reloader would start a second scheduler in the child process
        app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
    finally:
        app.extensions[EXTENSION_KEY]['scheduler'].stop(wait=False)


if __name__ == '__main__':
    run_server()
