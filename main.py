#!/usr/bin/env python3
"""IaC Agent - generate, build, deploy and verify CDKTF Go infrastructure.

Usage:
    python main.py generate --prompt "create a storage bucket"
    python main.py generate --file prompt.txt --mode remote --cycles 5
    python main.py config --init
    python main.py config --show
    python main.py template --list
    python main.py template --copy
"""

import argparse
import json
import logging
import os
import shutil
import sys

from agents.generator import GeneratorAgent
from config.defaults import DEFAULTS
from config.settings import load_settings, save_settings, settings_to_dict
from core.backends import create_backend
from core.errors import ConnectivityFailure, MissingCredentialError
from core.orchestrator import Orchestrator, summarize
from utils.logger import get_logger

TEMPLATES = {"cdk-go": "CDKTF Go template"}


def build_orchestrator(settings):
    """Wire the generator, backend and pipeline selected by settings."""
    generator = GeneratorAgent(
        api_key=settings.anthropic_api_key,
        template_path=settings.template_path,
    )
    return Orchestrator(
        generator,
        create_backend(settings),
        max_attempts_per_pass=settings.max_attempts_per_pass,
    )


def _format_summary(summary):
    """Format the per-cycle summary for CLI display."""
    lines = ["", "=== EXECUTION SUMMARY ==="]
    for record in summary.records:
        if record.succeeded:
            status = "Success"
        elif record.deployed:
            status = "Deployed, expectations not met"
        else:
            status = "Failed"
        lines.append(f"\nCycle {record.index}:")
        lines.append(f"  Status: {status}")
        if record.error_summary and not record.succeeded:
            lines.append(f"  Error: {record.error_summary}")
        if record.deployment_outputs:
            lines.append(f"  Outputs: {', '.join(map(str, record.deployment_outputs))}")
    succeeded = sum(1 for r in summary.records if r.succeeded)
    lines.append(f"\nFinal Result: {succeeded}/{len(summary.records)} cycles successful ({summary.status})")
    return "\n".join(lines)


def _read_prompt(args):
    if args.file:
        if not os.path.isfile(args.file):
            raise ValueError(f"Prompt file not found: {args.file}")
        with open(args.file, encoding="utf-8") as f:
            return f.read()
    return args.prompt


def cmd_generate(args):
    """Run the agent cycle. Returns the process exit code."""
    try:
        settings = load_settings(args.config)
        if args.mode:
            settings.execution_mode = args.mode
        if args.cycles is not None:
            settings.max_cycles = args.cycles
        if args.attempts is not None:
            settings.max_attempts_per_pass = args.attempts
        settings.validate()
        prompt = _read_prompt(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not prompt or not prompt.strip():
        print("Error: Prompt is required. Use --prompt or --file.", file=sys.stderr)
        return 1

    print(f"Prompt: {prompt[:200]}{'...' if len(prompt) > 200 else ''}")
    print(f"Mode:   {settings.execution_mode}")
    print(f"Cycles: {settings.max_cycles}")

    orchestrator = build_orchestrator(settings)
    try:
        records = orchestrator.run(
            prompt,
            max_cycles=settings.max_cycles,
            context=DEFAULTS["default_context"],
        )
    except MissingCredentialError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConnectivityFailure as e:
        print(f"Error: could not reach remote host: {e}", file=sys.stderr)
        return 1

    summary = summarize(records)
    print(_format_summary(summary))
    if summary.status == "succeeded":
        print("IaC generation completed successfully!")
        if settings.execution_mode == "local":
            print(f"Generated files available in: {settings.output_path}")
    elif summary.status == "partial":
        print("Deployed, but the deployment outputs did not meet the request.")
    else:
        print("IaC generation failed. Check the errors above.")
    return summary.exit_code


def cmd_config(args):
    settings = load_settings(args.config)
    if args.init:
        path = save_settings(settings, args.config)
        print(f"Configuration saved to {path}")
        return 0
    if args.show:
        print("Current configuration:")
        print(json.dumps(settings_to_dict(settings, mask_secrets=True), indent=2))
        return 0
    print("Use --init to create config file or --show to display current config")
    return 0


def cmd_template(args):
    if args.list:
        print("Available templates:")
        for name, desc in TEMPLATES.items():
            print(f"  - {name}: {desc}")
        return 0
    if args.copy:
        settings = load_settings(args.config)
        source = settings.template_path
        target = os.path.join(os.getcwd(), "template")
        if not os.path.isdir(source):
            print(f"Error: Template not found: {source}", file=sys.stderr)
            return 1
        shutil.copytree(source, target, dirs_exist_ok=True)
        print(f"Template copied to: {target}")
        return 0
    print("Use --list to show templates or --copy to copy a template")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="iac-agent",
        description="IaC code generator for CDKTF Go projects",
    )
    parser.add_argument("--config", help=f"Config file (default: ./{DEFAULTS['config_filename']})")
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")
    subparsers = parser.add_subparsers(dest="command")

    gen = subparsers.add_parser("generate", help="Generate IaC code from a prompt")
    source = gen.add_mutually_exclusive_group()
    source.add_argument("-p", "--prompt", help="Infrastructure prompt")
    source.add_argument("-f", "--file", help="Read prompt from file")
    gen.add_argument("-m", "--mode", choices=["local", "remote"], help="Execution mode")
    gen.add_argument("-c", "--cycles", type=int, help="Maximum cycles")
    gen.add_argument("-a", "--attempts", type=int, help="Maximum pipeline passes per cycle")

    cfg = subparsers.add_parser("config", help="Configure the tool")
    cfg.add_argument("--init", action="store_true", help="Initialize configuration file")
    cfg.add_argument("--show", action="store_true", help="Show current configuration")

    tpl = subparsers.add_parser("template", help="Template management")
    tpl.add_argument("--list", action="store_true", help="List available templates")
    tpl.add_argument("--copy", action="store_true", help="Copy template to current directory")

    return parser


COMMANDS = {
    "generate": cmd_generate,
    "config": cmd_config,
    "template": cmd_template,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    get_logger(console_level=logging.DEBUG if args.verbose else logging.INFO)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
