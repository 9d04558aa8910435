"""
Command-line interface for the Project Downloader.

Provides commands for running acquisition jobs and for exercising the
extraction, location and classification steps on their own.
"""

import json
import sys
from pathlib import Path

import click

from downloader.core.config import Config
from downloader.core.exceptions import DownloaderError
from downloader.utils.logging_config import setup_logging


def _fail(ctx, error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    if ctx.obj.get("verbose"):
        import traceback
        traceback.print_exc()
    sys.exit(1)


@click.group()
@click.version_option(version="1.0.0")
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
@click.option(
    "--log-file",
    type=click.Path(),
    help="Path to log file"
)
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Load environment variables from this .env file"
)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON configuration file (environment variables still apply)"
)
@click.pass_context
def cli(ctx, verbose, log_file, env_file, config_path):
    """
    Project Downloader

    Materialize git repositories and uploaded archives onto disk
    and classify their primary language.
    """
    ctx.ensure_object(dict)

    if config_path:
        Config.load_from_file(config_path)
    config = Config.load_from_env(env_file)

    ctx.obj["verbose"] = verbose or config.verbose
    ctx.obj["config"] = config

    log_level = "DEBUG" if ctx.obj["verbose"] else config.log_level
    setup_logging(level=log_level, log_file=Path(log_file) if log_file else None)


@cli.command()
@click.argument("analysis_id")
@click.option("--organization", "organization_id", required=True, help="Organization id")
@click.option("--project", "project_id", required=True, help="Project id")
@click.option("--integration", "integration_id", default=None, help="Integration id (VCS projects)")
@click.option(
    "--store",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON metadata store (default: configured path)"
)
@click.option(
    "--results",
    type=click.Path(),
    help="JSON-lines file receiving the result message"
)
@click.pass_context
def acquire(ctx, analysis_id, organization_id, project_id, integration_id, store, results):
    """
    Run one acquisition job.

    Examples:

        downloader acquire 7d1c --organization acme --project 42 --integration gh1
    """
    from downloader.ingestion.models import JobDescriptor
    from downloader.service import DownloaderService
    from downloader.storage.backend import JSONLinesPublisher, JSONMetadataStore

    config = ctx.obj["config"]
    job = JobDescriptor(
        analysis_id=analysis_id,
        project_id=project_id,
        integration_id=integration_id,
        organization_id=organization_id,
    )
    service = DownloaderService(
        JSONMetadataStore(store or config.metadata_store_path),
        JSONLinesPublisher(results or config.results_path),
        config,
    )

    try:
        message = service.handle(job)
    except (DownloaderError, ValueError) as e:
        _fail(ctx, e)

    click.echo(json.dumps(message, indent=2))


@cli.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False))
@click.argument("destination", type=click.Path(file_okay=False))
@click.option("--list", "list_only", is_flag=True, help="List entries without extracting")
@click.pass_context
def extract(ctx, archive, destination, list_only):
    """Safely extract a ZIP or TAR+GZIP archive into DESTINATION."""
    from downloader.ingestion.archive import ArchiveExtractor, list_entries

    try:
        if list_only:
            for name in list_entries(archive):
                click.echo(name)
            return

        report = ArchiveExtractor(ctx.obj["config"].archive).extract(archive, destination)
    except DownloaderError as e:
        _fail(ctx, e)

    click.echo(f"Extracted {report.files_written} files to {report.destination}")
    if report.strip_prefix:
        click.echo(f"Stripped wrapper directory: {report.strip_prefix}")
    if report.entries_skipped:
        click.echo(f"Skipped {report.entries_skipped} non-regular entries")


@cli.command()
@click.argument("project_id")
@click.option("--root", type=click.Path(file_okay=False), help="Upload root (default: download root)")
@click.pass_context
def locate(ctx, project_id, root):
    """Print the uploaded archive of PROJECT_ID."""
    from downloader.ingestion.archive import ArchiveLocator

    config = ctx.obj["config"]
    try:
        path = ArchiveLocator(config.archive).locate(root or config.download_root, project_id)
    except DownloaderError as e:
        _fail(ctx, e)

    click.echo(str(path))


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def detect(path, as_json):
    """Classify the primary language of the tree at PATH."""
    from downloader.analysis.detector import LanguageClassifier

    result = LanguageClassifier().classify(path)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"Primary language: {result.primary_language}")
    click.echo(f"Confidence:       {result.confidence:.2f}")
    detected = ", ".join(result.detected_languages) or "none"
    click.echo(f"Detected:         {detected}")


@cli.command()
@click.argument("organization_id")
@click.argument("project_id")
@click.option("--branch", default=None, help="Branch name")
@click.option("--commit", default=None, help="Commit pin (overrides branch)")
@click.pass_context
def destination(ctx, organization_id, project_id, branch, commit):
    """Print the canonical destination of a project revision."""
    from downloader.ingestion.paths import PathPolicy

    config = ctx.obj["config"]
    policy = PathPolicy(config.default_ref)
    try:
        path = policy.destination(
            config.download_root,
            organization_id,
            project_id,
            policy.resolve_ref(branch, commit),
        )
    except ValueError as e:
        _fail(ctx, e)

    click.echo(str(path))


@cli.command()
@click.option(
    "--output", "-o",
    type=click.Path(),
    default="config.json",
    help="Output path for configuration file"
)
def init(output):
    """
    Initialize configuration file.

    Creates a configuration file from the current settings that can be
    customized.
    """
    Config.save_to_file(output)
    click.echo(f"Configuration saved to: {output}")


@cli.command()
def list_languages():
    """List languages the classifier can report."""
    from downloader.analysis.detector import LanguageClassifier

    classifier = LanguageClassifier()

    click.echo("Supported Languages:")
    click.echo("-" * 40)
    for lang in sorted(classifier.get_supported_languages()):
        manifests = classifier.get_manifests_for_language(lang)
        click.echo(f"  {lang}: {', '.join(manifests)}")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
