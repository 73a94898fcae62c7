#!/usr/bin/env python3
"""
Pod Recovery CLI
================

Interface de linha de comando do harness de verificação de recuperação.

Uso:
    pod-recovery run --namespace web --selector app=nginx --deployment nginx \\
        --count 3 --mode graceful --timeout 60 --latency-ceiling 30000 \\
        --output report.json
    pod-recovery pods --namespace web --selector app=nginx
    pod-recovery status --namespace web --deployment nginx
    pod-recovery config show

Códigos de saída do comando run: 0 aprovado, 1 reprovado pelo limiar,
2 erro fatal de conectividade/autenticação, 130 interrompido. Opções ou
configuração inválidas também saem com 2, a convenção do click para erros
de uso; nesse caso nenhum probe roda e nenhum relatório é gravado.
"""

import json
from pathlib import Path
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..cluster.client import ClusterClient
from ..core.base import EXIT_FATAL, Report, ReportSummary, setup_logging
from ..core.config import TARGET_STRATEGIES, ConfigManager, HarnessConfig
from ..core.errors import ConfigurationError, PodRecoveryError
from ..core.harness import Harness
from ..reports.report_writer import build_table, summary_line, write_csv, write_json

console = Console()


def _load_config(ctx, **overrides) -> HarnessConfig:
    """Aplica as opções da CLI sobre ambiente e arquivo de configuração"""
    try:
        manager = ConfigManager(ctx.obj['config_file'])
        manager.update(kubeconfig=ctx.obj['kubeconfig'], context=ctx.obj['context'], **overrides)
    except ConfigurationError as e:
        raise click.UsageError(str(e))
    config = manager.get_config()
    setup_logging('DEBUG' if ctx.obj['verbose'] else config.log_level)
    return config


def _connect(config: HarnessConfig) -> ClusterClient:
    return ClusterClient(
        namespace=config.namespace,
        kubeconfig_path=config.kubeconfig,
        context=config.context,
        retry_attempts=config.retry_attempts,
        retry_wait=config.retry_wait,
    )


def _save_report(report: Report, config: HarnessConfig):
    output = Path(config.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, 'w', encoding='utf-8') as f:
        write_json(report, f)
    console.print(f"[green]Report saved to: {output}[/green]")

    if config.csv_output:
        csv_path = Path(config.csv_output)
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        with open(csv_path, 'w', newline='', encoding='utf-8') as f:
            write_csv(report, f)
        console.print(f"[green]CSV saved to: {csv_path}[/green]")


def _aborted_report(config: HarnessConfig, error: Exception) -> Report:
    """Relatório vazio para falhas antes do primeiro probe"""
    report = Report(config.to_dict())
    report.abort(f"{type(error).__name__}: {error}")
    summary = ReportSummary.from_results([], config.success_threshold, config.latency_ceiling_ms, aborted=True)
    report.finalize(summary, EXIT_FATAL)
    return report


@click.group()
@click.option('--config', '-c', 'config_file', default=None, help='Configuration file (JSON or YAML)')
@click.option('--kubeconfig', default=None, help='Path to kubeconfig file')
@click.option('--context', default=None, help='Kubeconfig context to use')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, config_file, kubeconfig, context, verbose):
    """
    🩺 Pod Recovery Probe

    Deletes workload pods and measures how fast the orchestrator replaces them.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config_file
    ctx.obj['kubeconfig'] = kubeconfig
    ctx.obj['context'] = context
    ctx.obj['verbose'] = verbose


@cli.command('run')
@click.option('--namespace', '-n', default=None, help='Kubernetes namespace')
@click.option('--selector', '-l', 'label_selector', default=None, help='Label selector, e.g. app=nginx')
@click.option('--deployment', '-d', default=None, help='Deployment owning the pods')
@click.option('--count', type=click.IntRange(min=1), default=None, help='Number of probes')
@click.option('--mode', type=click.Choice(['graceful', 'forced']), default=None, help='Deletion mode')
@click.option('--timeout', 'watch_timeout', type=click.FloatRange(min=0), default=None,
              help='Seconds to wait for a Ready replacement')
@click.option('--convergence-timeout', type=click.FloatRange(min=0), default=None,
              help='Seconds to wait for the replica count to converge')
@click.option('--latency-ceiling', 'latency_ceiling_ms', type=click.IntRange(min=0), default=None,
              help='Maximum acceptable recovery latency (ms)')
@click.option('--success-threshold', type=click.FloatRange(0.0, 1.0), default=None,
              help='Minimum success ratio to pass (0-1)')
@click.option('--interval', type=click.FloatRange(min=0), default=None, help='Pause between probes (s)')
@click.option('--strategy', type=click.Choice(TARGET_STRATEGIES), default=None, help='Target selection strategy')
@click.option('--seed', type=int, default=None, help='Seed for random target selection')
@click.option('--service-url', default=None, help='HTTP endpoint checked after each recovery')
@click.option('--output', '-o', default=None, help='Report file path (JSON)')
@click.option('--csv', 'csv_output', default=None, help='Optional per-probe CSV file')
@click.pass_context
def run(ctx, **options):
    """Run recovery probes and write a report"""
    config = _load_config(ctx, **options)
    try:
        config.validate()
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    console.print(Panel(
        f"[bold]Namespace:[/bold] {config.namespace}\n"
        f"[bold]Selector:[/bold] {config.label_selector}\n"
        f"[bold]Deployment:[/bold] {config.deployment}\n"
        f"[bold]Probes:[/bold] {config.count} ({config.mode})\n"
        f"[bold]Watch Timeout:[/bold] {config.watch_timeout}s\n"
        f"[bold]Latency Ceiling:[/bold] "
        f"{str(config.latency_ceiling_ms) + 'ms' if config.latency_ceiling_ms is not None else 'none'}",
        title="🔥 Pod Recovery Run",
        box=box.ROUNDED
    ))

    try:
        cluster = _connect(config)
    except PodRecoveryError as e:
        console.print(f"[red]Error connecting to cluster: {e}[/red]")
        report = _aborted_report(config, e)
    else:
        with cluster:
            with console.status("Running recovery probes..."):
                report = Harness(cluster, config).run()

    if report.results:
        console.print(build_table(report))

    line = summary_line(report)
    style = "green" if report.passed else "red"
    console.print(f"[bold {style}]{line}[/bold {style}]")

    _save_report(report, config)
    ctx.exit(report.exit_code)


@cli.command('pods')
@click.option('--namespace', '-n', default=None, help='Kubernetes namespace')
@click.option('--selector', '-l', 'label_selector', default=None, help='Label selector, e.g. app=nginx')
@click.pass_context
def pods(ctx, namespace, label_selector):
    """List pods that a probe could target"""
    config = _load_config(ctx, namespace=namespace, label_selector=label_selector)

    try:
        with _connect(config) as cluster:
            refs = cluster.list_pods(config.namespace, config.label_selector)
    except PodRecoveryError as e:
        console.print(f"[red]Error listing pods: {e}[/red]")
        ctx.exit(EXIT_FATAL)

    if not refs:
        console.print(f"[yellow]No pods match '{config.label_selector}' in namespace '{config.namespace}'[/yellow]")
        return

    table = Table(title=f"Pods in '{config.namespace}'", box=box.ROUNDED)
    table.add_column("Pod Name", style="cyan")
    table.add_column("Phase")
    table.add_column("Ready", style="green")
    table.add_column("Owner", style="yellow")
    table.add_column("UID")

    for ref in refs:
        ready = "✅" if ref.ready else "❌"
        if ref.terminating:
            ready += " (terminating)"
        table.add_row(ref.name, ref.phase, ready, ref.owner or "-", ref.uid)

    console.print(table)


@cli.command('status')
@click.option('--namespace', '-n', default=None, help='Kubernetes namespace')
@click.option('--deployment', '-d', default=None, help='Deployment name')
@click.pass_context
def status(ctx, namespace, deployment):
    """Show desired and ready replicas of a deployment"""
    config = _load_config(ctx, namespace=namespace, deployment=deployment)
    if not config.deployment:
        raise click.UsageError("A deployment name is required (--deployment)")

    try:
        with _connect(config) as cluster:
            replicas = cluster.get_replica_status(config.deployment, config.namespace)
    except PodRecoveryError as e:
        console.print(f"[red]Error reading deployment: {e}[/red]")
        ctx.exit(EXIT_FATAL)

    healthy = replicas.ready == replicas.desired
    console.print(Panel(
        f"[bold]Deployment:[/bold] {config.namespace}/{config.deployment}\n"
        f"[bold]Desired:[/bold] {replicas.desired}\n"
        f"[bold]Ready:[/bold] {replicas.ready}\n"
        f"[bold]Converged:[/bold] {'✅' if healthy else '❌'}",
        title="Replica Status",
        box=box.ROUNDED
    ))


@cli.group()
def config():
    """Configuration management"""


@config.command('show')
@click.pass_context
def config_show(ctx):
    """Show the effective configuration"""
    effective = _load_config(ctx)
    console.print(Panel(
        json.dumps(effective.to_dict(), indent=2),
        title="Current Configuration",
        box=box.ROUNDED
    ))


def main(args: Optional[list] = None):
    cli(args=args, prog_name="pod-recovery")


if __name__ == "__main__":
    main()
