"""Default agent settings."""

DEFAULTS = {
    "max_cycles": 3,
    "hard_max_cycles": 10,       # absolute ceiling, cannot be overridden
    "max_attempts_per_pass": 3,
    "command_timeout": None,     # seconds; None runs phase commands unbounded
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 8000,
    "allowed_commands": ["npm", "npx", "go", "gofmt", "git"],
    "phase_commands": {
        "build": ["npm", "run", "build"],
        "synth": ["npm", "run", "synth"],
        "lint": ["npm", "run", "lint"],
        "deploy": ["npm", "run", "deploy"],
    },
    "teardown_command": ["npm", "run", "destroy"],
    "bootstrap": {
        "package.json": [["npm", "install"]],
        "go.mod": [["go", "mod", "tidy"], ["go", "mod", "download"]],
    },
    "required_files": ["bin/tap.go", "lib/tap_stack.go", "cdk.json"],
    "output_locations": [
        "cfn-outputs/",
        "cfn-outputs/flat-outputs.json",
        "cdk-stacks.json",
        "terraform.tfstate",
    ],
    "output_key_markers": ["output", "stack", "cfn", "arn", "name", "id", "url", "endpoint"],
    "config_filename": "iac-gen-config.json",
    "output_path": "generated",
    "template_files": ["cdk.json", "bin/tap.go", "lib/tap_stack.go"],
    "default_context": "Generate production-ready CDKTF Go infrastructure code",
}
