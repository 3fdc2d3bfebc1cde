"""ffmpeg argument assembly from an EncodingProfile."""

from __future__ import annotations

from pathlib import Path

from vidshrink.encoding.profiles import EncodingProfile


def build_arguments(
    profile: EncodingProfile,
    input_path: Path,
    output_path: Path,
    target_width: int | None = None,
    target_height: int | None = None,
) -> list[str]:
    """Build ffmpeg arguments (without the executable) for one encode.

    Order is the same for every profile:
    hwaccel input flags, -i input, -c:v encoder, -vf scaler (only when a
    target size is given), bitrate args, quality args, -c:a copy,
    -c:s copy, -map 0, -y, output.

    Args:
        profile: Encoding profile for the job.
        input_path: Source file.
        output_path: Temp output file.
        target_width: Output width when scaling.
        target_height: Output height when scaling.

    Returns:
        Argument list for ffmpeg.
    """
    args = profile.hwaccel_input.to_args()
    args.extend(["-i", str(input_path)])
    args.extend(["-c:v", profile.encoder.encoder])

    if target_width and target_height:
        scaler = profile.scaler(target_width, target_height)
        if scaler is not None:
            args.extend(["-vf", scaler.filter])

    args.extend(profile.encoder.bitrate_args)
    args.extend(profile.encoder.quality_args)

    # Audio and subtitles are carried over untouched
    args.extend(["-c:a", "copy", "-c:s", "copy", "-map", "0"])
    args.append("-y")
    args.append(str(output_path))
    return args
