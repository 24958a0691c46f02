#!/usr/bin/env python3
"""Plugin management CLI tool."""

import argparse
import json
import sys
from collections import Counter
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from gateway.constants import CONTEXT_ROOT, IMPLEMENTATION_DIR, PLUGINS_DIR, RESERVED_CONFIG_FILE
from gateway.exceptions import InstallerRequired
from gateway.plugins.discovery import PluginDiscovery
from gateway.plugins.synthesizer import compose_uris


def discover(args):
    """Discover plugins in the configured directory, exiting if it is missing."""
    discovery = PluginDiscovery()
    try:
        return discovery.discover_all(Path(args.plugins_dir))
    except InstallerRequired as e:
        print(str(e))
        sys.exit(1)


def cmd_list(args):
    """List all discovered plugins."""
    plugins = discover(args)

    if not plugins:
        print("No plugins found.")
        return

    print(f"{'ID':<20} {'Name':<30} {'Route':<20} {'Resources':<10} {'CORS'}")
    print("-" * 90)

    for p in plugins:
        cors = "Yes" if p.manifest.cors_enabled else "No"
        print(
            f"{p.manifest.id:<20} {p.manifest.name:<30} {p.manifest.route.uri:<20} "
            f"{len(p.manifest.resources):<10} {cors}"
        )


def cmd_info(args):
    """Show detailed plugin information."""
    plugins = discover(args)

    # Last declaration wins, as at startup
    plugin = None
    for p in plugins:
        if p.manifest.id == args.plugin_id:
            plugin = p
    if not plugin:
        print(f"Plugin '{args.plugin_id}' not found.")
        sys.exit(1)

    manifest = plugin.manifest
    print(f"Plugin: {manifest.id}")
    print(f"  Name:        {manifest.name}")
    print(f"  Description: {manifest.description}")
    print(f"  Required:    {manifest.informational.required}")
    print(f"  Path:        {plugin.path}")
    print(f"  Route:       {manifest.route.uri}")
    print(f"  CORS:        {manifest.route.cors.whitelist if manifest.cors_enabled else 'disabled'}")
    if manifest.route.options:
        print(f"  Options:     {json.dumps(manifest.enabled_options())}")
    for resource in manifest.resources:
        verbs = ", ".join(b.http_method for b in resource.http_methods) or "-"
        print(f"  Resource v{resource.version}/{resource.route}: {resource.implementation} [{verbs}]")
        for parameter in resource.parameters:
            print(f"    - {parameter.parameter} ({parameter.type}) {' '.join(parameter.operators)}")


def cmd_routes(args):
    """Print every (verb, URI) the gateway would register."""
    plugins = discover(args)

    for p in plugins:
        for resource, uri in compose_uris(args.context_root, p.manifest):
            verbs = [b.http_method for b in resource.http_methods]
            if "OPTIONS" not in verbs:
                verbs.append("OPTIONS")
            for verb in verbs:
                binding = resource.binding_for(verb)
                target = f"{resource.implementation}::{binding.function}()" if binding else "enumeration"
                print(f"{verb:<8} {uri:<50} {p.manifest.id} => {target}")


def cmd_doctor(args):
    """Run health checks on the plugin directory."""
    issues = []

    plugins_dir = Path(args.plugins_dir)
    if not plugins_dir.is_dir():
        print(f"Plugin directory missing: {plugins_dir}")
        sys.exit(1)

    # Check reserved parameter table
    if not RESERVED_CONFIG_FILE.exists():
        issues.append(f"Reserved parameter file missing: {RESERVED_CONFIG_FILE} (defaults apply)")
    else:
        try:
            with open(RESERVED_CONFIG_FILE) as f:
                table = json.load(f)
            if not isinstance(table, dict):
                issues.append("Reserved parameter file is not a JSON object")
        except json.JSONDecodeError as e:
            issues.append(f"Reserved parameter file has invalid JSON: {e}")

    # Discover and validate manifests
    discovery = PluginDiscovery()
    discovery.events.subscribe(
        "failure", lambda directory, reason: issues.append(f"{directory}: {reason}")
    )
    plugins = discovery.discover_all(plugins_dir)

    # Check for identifiers declared more than once
    for plugin_id, count in Counter(p.id for p in plugins).items():
        if count > 1:
            issues.append(f"Plugin '{plugin_id}' declared {count} times, the last one wins")

    # Check implementation files and URI collisions
    seen = {}
    for p in plugins:
        for resource, uri in compose_uris(args.context_root, p.manifest):
            module = resource.implementation.partition(":")[0]
            if module.endswith(".py"):
                module = module[:-3]
            impl_file = p.path / IMPLEMENTATION_DIR / f"{module}.py"
            if not impl_file.exists():
                issues.append(f"Plugin '{p.id}': implementation file missing: {impl_file}")
            for binding in resource.http_methods:
                key = (binding.http_method, uri)
                if key in seen and seen[key] != p.id:
                    issues.append(f"{uri} [{binding.http_method}] bound by both '{seen[key]}' and '{p.id}'")
                seen[key] = p.id

    if issues:
        print(f"Found {len(issues)} issue(s):")
        for i, issue in enumerate(issues, 1):
            print(f"  {i}. {issue}")
        sys.exit(1)
    else:
        print(f"All checks passed. {len(plugins)} plugin(s) found, {len(seen)} route(s).")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Manifest Gateway Plugin Manager")
    parser.add_argument("--plugins-dir", default=str(PLUGINS_DIR), help="Plugin directory")
    parser.add_argument("--context-root", default=CONTEXT_ROOT, help="URI context root")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List all plugins")

    # info
    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("plugin_id", help="Plugin ID")

    # routes
    subparsers.add_parser("routes", help="Show the synthesized routes")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "routes": cmd_routes,
        "doctor": cmd_doctor,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
