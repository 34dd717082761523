#!/usr/bin/env python3
"""HTTP job server for the IaC agent.

Each POST queues an agent run on a background thread. Runs share one
working directory, so they execute one at a time; clients poll the job
for its cycle records.
"""

import logging
import os
import threading
import time
import uuid

from flask import Flask, jsonify, request

from config.settings import load_settings
from core.orchestrator import summarize
from main import build_orchestrator

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Jobs keyed by job_id: {id: {"status", "records", "error", "prompt", "created"}}
_jobs = {}
_jobs_lock = threading.Lock()
# One run at a time: every job shares the configured working directory
_run_lock = threading.Lock()
_MAX_JOBS = 50  # prevent unbounded memory growth
_JOB_TTL = 3600  # expire jobs after 1 hour


def _cleanup_jobs():
    """Remove expired jobs. Called under _jobs_lock."""
    now = time.time()
    expired = [jid for jid, job in _jobs.items() if now - job["created"] > _JOB_TTL]
    for jid in expired:
        del _jobs[jid]
    # If still over limit, remove oldest
    if len(_jobs) > _MAX_JOBS:
        by_age = sorted(_jobs.items(), key=lambda x: x[1]["created"])
        for jid, _ in by_age[:len(_jobs) - _MAX_JOBS]:
            del _jobs[jid]


def _store_job(prompt):
    """Register a queued job and return its ID."""
    job_id = str(uuid.uuid4())[:8]
    with _jobs_lock:
        _cleanup_jobs()
        _jobs[job_id] = {
            "status": "queued",
            "prompt": prompt,
            "records": [],
            "error": None,
            "created": time.time(),
        }
    return job_id


def _update_job(job_id, **fields):
    with _jobs_lock:
        if job_id in _jobs:
            _jobs[job_id].update(fields)


def _get_job(job_id):
    """Get a job, or None if not found/expired."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and time.time() - job["created"] > _JOB_TTL:
            _jobs.pop(job_id, None)
            return None
        return dict(job) if job else None


def _record_to_dict(record):
    """Serialize a CycleRecord to a JSON-safe dict."""
    result = record.pipeline_result
    return {
        "cycle": record.index,
        "outcome": record.outcome.value,
        "deployed": record.deployed,
        "error_kind": record.error_kind,
        "error": record.error_summary,
        "files": sorted(record.generated_files),
        "deployment_outputs": record.deployment_outputs,
        "pipeline": None if result is None else {
            "success": result.success,
            "attempts": result.attempts,
            "failed_phase": result.failed_phase.value if result.failed_phase else None,
            "phases": [
                {
                    "phase": o.phase.value,
                    "attempt": o.attempt,
                    "success": o.success,
                    "exit_code": o.exit_code,
                    "fix": o.applied_fix.category if o.applied_fix else None,
                }
                for o in result.history
            ],
        },
    }


def _run_job(job_id, settings, prompt, context):
    with _run_lock:
        _update_job(job_id, status="running")
        try:
            records = build_orchestrator(settings).run(
                prompt, max_cycles=settings.max_cycles, context=context
            )
        except Exception as e:
            logger.exception("Job %s failed", job_id)
            _update_job(job_id, status="error", error=str(e))
            return
    _update_job(job_id, status=summarize(records).status, records=records)


@app.route("/api/runs", methods=["POST"])
def api_start_run():
    data = request.get_json(silent=True)
    if not data or not str(data.get("prompt", "")).strip():
        return jsonify({"error": "Missing prompt"}), 400

    try:
        settings = load_settings()
        if data.get("mode"):
            settings.execution_mode = data["mode"]
        if data.get("max_cycles") is not None:
            settings.max_cycles = int(data["max_cycles"])
        settings.validate()
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    prompt = data["prompt"].strip()
    job_id = _store_job(prompt)
    thread = threading.Thread(
        target=_run_job,
        args=(job_id, settings, prompt, data.get("context")),
        daemon=True,
    )
    thread.start()
    return jsonify({"job_id": job_id, "status": "queued"}), 202


@app.route("/api/runs/<job_id>")
def api_run_status(job_id):
    job = _get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    return jsonify({
        "job_id": job_id,
        "status": job["status"],
        "prompt": job["prompt"],
        "error": job["error"],
        "cycles": [_record_to_dict(r) for r in job["records"]],
    })


@app.route("/api/runs")
def api_list_runs():
    with _jobs_lock:
        jobs = sorted(_jobs.items(), key=lambda x: x[1]["created"], reverse=True)
        listing = [
            {"job_id": jid, "status": job["status"], "cycles": len(job["records"])}
            for jid, job in jobs
        ]
    return jsonify(listing)


if __name__ == "__main__":
    from utils.logger import get_logger

    get_logger()
    port = int(os.environ.get("PORT", 5001))
    print(f"IaC agent server running at http://localhost:{port}")
    app.run(debug=False, port=port)
