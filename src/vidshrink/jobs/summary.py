"""Human-readable run and store summaries."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from vidshrink.analyzer import MediaFile
from vidshrink.core.formatting import (
    format_duration,
    format_file_size,
    format_resolution,
)
from vidshrink.jobs.runner import RunReport
from vidshrink.store.job_store import ErrorRecord, StoreStats

# Cap on listed plan and analysis-error paths; the rest become a count.
# Failures are always listed in full.
MAX_LISTED = 20


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def describe_plan(media: MediaFile) -> str:
    """One-line description of what a job will do."""
    source = f"{media.codec or '?'} {format_resolution(media.width, media.height)}"
    if media.needs_conversion and media.needs_scaling:
        action = "convert + scale"
    elif media.needs_scaling:
        action = "scale only"
    else:
        action = "convert"
    target = format_resolution(
        media.target_width or media.width, media.target_height or media.height
    )
    line = f"{media.path}: {source} -> hevc {target} ({action})"
    if media.overrides is not None:
        line += f" [{media.overrides.profile_name}]"
    return line


def _reason_counts(entries: Iterable[tuple[object, str]]) -> list[str]:
    counts = Counter(reason for _path, reason in entries)
    return [f"  {reason}: {count}" for reason, count in counts.most_common()]


def _limited(lines: list[str]) -> list[str]:
    if len(lines) <= MAX_LISTED:
        return lines
    hidden = len(lines) - MAX_LISTED
    return [*lines[:MAX_LISTED], f"  ... and {hidden} more"]


def _type_breakdown(report: RunReport) -> str:
    counts = report.analysis.type_counts()
    return ", ".join(f"{kind.value} {count}" for kind, count in counts.items())


def format_dry_run(report: RunReport) -> str:
    """Planned transcodes, largest first, plus skip and exclusion reasons."""
    analysis = report.analysis
    lines = [f"Dry run: {_plural(len(analysis.to_transcode), 'file')} to transcode"]
    lines.append(f"  {_type_breakdown(report)}")
    lines.append(f"  Estimated time: {format_duration(report.estimated_seconds)}")
    lines.extend(_limited([f"  {describe_plan(m)}" for m in analysis.to_transcode]))

    if analysis.skipped:
        lines.append("")
        lines.append(f"Skipped ({len(analysis.skipped)}):")
        lines.extend(_reason_counts(analysis.skipped))

    excluded = report.discovery.excluded
    if excluded:
        lines.append("")
        lines.append(f"Excluded ({len(excluded)}):")
        lines.extend(_reason_counts(excluded))

    if analysis.not_analyzed:
        lines.append("")
        lines.append(f"Not analyzed (stopped): {len(analysis.not_analyzed)}")

    if analysis.errors:
        lines.append("")
        lines.append(f"Could not analyze ({len(analysis.errors)}):")
        lines.extend(
            _limited([f"  {path}: {message}" for path, message in analysis.errors])
        )
    return "\n".join(lines)


def format_run_report(report: RunReport) -> str:
    """End-of-run summary."""
    discovery = report.discovery
    analysis = report.analysis
    lines = [
        f"Discovered {_plural(len(discovery.files), 'file')} "
        f"({format_file_size(discovery.total_bytes)}), "
        f"{len(discovery.excluded)} excluded",
    ]
    for root in discovery.missing_roots:
        lines.append(f"  Missing media root: {root}")
    if discovery.unreadable:
        lines.append(f"  Unreadable entries: {len(discovery.unreadable)}")

    lines.append(
        f"Already done: {report.already_done}, "
        f"permanently failed: {len(report.permanently_failed)}"
    )
    lines.append(
        f"Analyzed: {len(analysis.to_transcode)} to transcode, "
        f"{len(analysis.skipped)} skipped, {len(analysis.errors)} errors "
        f"({analysis.cache_hits} from cache)"
    )
    if analysis.not_analyzed:
        lines.append(f"  Not analyzed (stopped): {len(analysis.not_analyzed)}")
    if analysis.to_transcode and not report.dry_run:
        lines.append(
            f"  To transcode by type: {_type_breakdown(report)}; "
            f"estimated {format_duration(report.estimated_seconds)}"
        )

    if report.dry_run:
        lines.append("")
        lines.append(format_dry_run(report))
        return "\n".join(lines)

    scheduler = report.scheduler
    if scheduler is not None:
        profile = f" using {report.hardware_profile}" if report.hardware_profile else ""
        lines.append(
            f"Transcoded{profile}: {scheduler.committed} committed, "
            f"{scheduler.reverted} kept original, {scheduler.failed} failed, "
            f"{scheduler.cancelled} cancelled"
        )
        lines.append(f"Space saved: {format_file_size(report.bytes_saved)}")

    if report.failures:
        lines.append("")
        lines.append(f"Failures ({len(report.failures)}):")
        lines.extend(
            f"  {f.path} (attempt {f.attempts}): {f.error}" for f in report.failures
        )

    lines.append("")
    status = "Interrupted" if report.interrupted else "Finished"
    lines.append(f"{status} in {format_duration(report.elapsed)}")
    return "\n".join(lines)


def format_store_stats(stats: StoreStats, last_run: str | None = None) -> str:
    lines = [
        f"Completed:            {stats.completed}",
        f"  kept original:      {stats.kept_original}",
        f"Errors:               {stats.errors}",
        f"  permanently failed: {stats.permanently_failed}",
        f"Space saved:          {format_file_size(stats.bytes_saved)}",
    ]
    if last_run:
        lines.append(f"Last run:             {last_run}")
    return "\n".join(lines)


def format_error_list(errors: list[ErrorRecord], max_attempts: int) -> str:
    """Error records, most attempts first."""
    if not errors:
        return "No recorded errors."
    lines = []
    for error in sorted(errors, key=lambda e: (-e.attempts, e.path)):
        marker = " (skipped)" if error.attempts >= max_attempts else ""
        lines.append(f"{error.path}")
        lines.append(f"  attempts: {error.attempts}{marker}  last: {error.timestamp}")
        lines.append(f"  {error.error}")
    return "\n".join(lines)
