"""
Practice test CLI.

Usage:
    python -m testgen.cli plan --course "Biology 101" --topic "Cell division" --topic Genetics --count 5
    python -m testgen.cli generate --course "Biology 101" --topic Genetics --difficulty hard [--json]
    python -m testgen.cli backend-status
    python -m testgen.cli serve [--port 8000]

Backend and generation defaults come from the same environment variables as
the API server (LOCAL_LLM_ENABLED, TESTGEN_CONCURRENCY, ...); flags override them.
"""

import sys
import json
import asyncio
import logging
import argparse

from testgen.backend import get_backend
from testgen.blueprint import InvalidRequest, plan
from testgen.models import Difficulty, QuestionFormat, TestRequest
from testgen.orchestrator import TestOrchestrator


def _request_from_args(args) -> TestRequest:
    return TestRequest(
        course_id=args.course_id or args.course,
        course_name=args.course,
        topics=tuple(args.topic or ()),
        difficulty=Difficulty(args.difficulty),
        question_count=args.count,
        formats=tuple(QuestionFormat(f) for f in (args.format or ["multiple_choice"])),
    )


def _settings(args):
    from server.config import Settings

    settings = Settings()
    if getattr(args, 'offline', False):
        settings.local_llm_enabled = False
    if getattr(args, 'max_attempts_per_slot', None):
        settings.max_attempts_per_slot = args.max_attempts_per_slot
    if getattr(args, 'max_attempts_per_test', None) is not None:
        settings.max_attempts_per_test = args.max_attempts_per_test
    if getattr(args, 'concurrency', None):
        settings.concurrency = args.concurrency
    if getattr(args, 'deadline', None):
        settings.deadline_s = args.deadline
    if getattr(args, 'dev_logs', False):
        settings.enable_dev_logs = True
    return settings


def cmd_plan(args):
    """Print the slot plan for a request. No backend calls."""
    try:
        blueprint = plan(_request_from_args(args))
    except InvalidRequest as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    if args.json:
        print(json.dumps(blueprint.to_dict(), indent=2))
        return 0
    print(f"\nBlueprint for {blueprint.course_name} ({blueprint.difficulty.value}, "
          f"~{blueprint.estimated_time_minutes} min):\n")
    for s in blueprint.slots:
        print(f"  {s.slot_id:>4}  {s.format.value:<16} {s.bloom_level.value:<10} "
              f"{s.template_type.value:<20} {s.topic}")
    print()
    print("  Topics: " + ", ".join(f"{t}={n}" for t, n in blueprint.topic_quotas.items()))
    print("  Bloom:  " + ", ".join(f"{b.value}={n}" for b, n in blueprint.bloom_distribution.items()))
    return 0


def cmd_generate(args):
    """Generate a practice test and print it."""
    from server.config import generation_config

    settings = _settings(args)
    orchestrator = TestOrchestrator(get_backend(settings), config=generation_config(settings))
    result = orchestrator.generate_sync(_request_from_args(args))

    if args.json:
        out = {"ok": result.ok, "stats": result.stats.to_dict()}
        if result.ok:
            out["questions"] = [q.to_dict() for q in result.questions]
        else:
            out["failure"] = {
                "reason": result.failure.reason.value,
                "message": result.failure.message,
                "slot_id": result.failure.slot_id,
            }
        print(json.dumps(out, indent=2))
        return 0 if result.ok else 1

    if not result.ok:
        print(f"Error: {result.failure}", file=sys.stderr)
        return 1
    for q in result.questions:
        pq = q.question
        tag = " [fallback]" if pq.source == "fallback" else ""
        print(f"\n{q.slot.slot_id}. ({q.slot.topic}){tag} {pq.prompt}")
        for i, opt in enumerate(pq.options or ()):
            print(f"     {'ABCD'[i]}) {opt}")
        print(f"   Answer: {pq.correct_answer}")
    stats = result.stats
    print(f"\n{stats.successful_slots}/{stats.total_slots} questions, "
          f"{stats.total_attempts} attempt(s), {stats.repair_attempts} repair(s), "
          f"{stats.fallbacks_used} fallback(s)")
    return 0


def cmd_backend_status(args):
    """Check the configured backend."""
    settings = _settings(args)
    backend = get_backend(settings)
    ok, message = asyncio.run(backend.test_connection())
    print(f"{backend.name}: {'available' if ok else 'unavailable'} ({message})")
    return 0 if ok else 1


def cmd_serve(args):
    """Run the API server."""
    import uvicorn

    uvicorn.run("server.app:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _add_request_args(p):
    p.add_argument('--course', required=True, help='Course name')
    p.add_argument('--course-id', default=None, help='Course id (default: course name)')
    p.add_argument('--topic', action='append', help='Topic (repeatable, order kept)')
    p.add_argument('--difficulty', default='medium', choices=[d.value for d in Difficulty])
    p.add_argument('--count', type=int, default=10, help='Number of questions')
    p.add_argument('--format', action='append', choices=[f.value for f in QuestionFormat],
                   help='Question format (repeatable, assigned round-robin)')
    p.add_argument('--json', action='store_true', help='Print JSON')


def main(argv=None):
    parser = argparse.ArgumentParser(description='Practice test generator')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command')

    plan_parser = subparsers.add_parser('plan', help='Show the slot plan for a request')
    _add_request_args(plan_parser)

    gen_parser = subparsers.add_parser('generate', help='Generate a practice test')
    _add_request_args(gen_parser)
    gen_parser.add_argument('--offline', action='store_true',
                            help='Use the offline template backend')
    gen_parser.add_argument('--max-attempts-per-slot', type=int, default=None)
    gen_parser.add_argument('--max-attempts-per-test', type=int, default=None)
    gen_parser.add_argument('--concurrency', type=int, default=None)
    gen_parser.add_argument('--deadline', type=float, default=None, help='Deadline in seconds')
    gen_parser.add_argument('--dev-logs', action='store_true', help='Trace every attempt')

    status_parser = subparsers.add_parser('backend-status', help='Check the configured backend')
    status_parser.add_argument('--offline', action='store_true')

    serve_parser = subparsers.add_parser('serve', help='Run the API server')
    serve_parser.add_argument('--host', default='127.0.0.1')
    serve_parser.add_argument('--port', type=int, default=8000)
    serve_parser.add_argument('--reload', action='store_true')

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
    )

    if args.command == 'plan':
        return cmd_plan(args)
    elif args.command == 'generate':
        return cmd_generate(args)
    elif args.command == 'backend-status':
        return cmd_backend_status(args)
    elif args.command == 'serve':
        return cmd_serve(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
