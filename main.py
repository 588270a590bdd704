#!/usr/bin/env python3
"""
Creative Video Studio - Main Entry Point

Generates marketing videos through Veo 3.1 (short clips and scene chains),
LongCat (long form) or HeyGen (talking avatars).

Usage:
    # Generate inline and wait for the result
    python main.py generate --prompt "Data dashboard comes alive" --duration 30

    # Queue a job and run it in a background worker
    python main.py submit --prompt "Quarterly results explainer" --duration 200

    # Inspect a job
    python main.py job 3f2a9c1b7d4e

    # Show provider capabilities
    python main.py providers
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("creative-video")


def build_request(args: argparse.Namespace):
    """Turn parsed CLI arguments into a GenerationRequest."""
    from services.video_generation import (
        GenerationMode,
        GenerationRequest,
        ImageRef,
        ProviderName,
        build_scene_prompts,
    )

    explicit_provider: Optional[ProviderName] = None
    if args.use_veo:
        explicit_provider = ProviderName.SHORT_CLIP
    elif args.use_longcat:
        explicit_provider = ProviderName.LONG_FORM
    elif args.use_avatar:
        explicit_provider = ProviderName.AVATAR

    mode = GenerationMode.AVATAR if args.avatar else GenerationMode.FACELESS

    extension_prompts = ()
    if args.auto_scenes:
        extension_prompts = tuple(build_scene_prompts(args.prompt, args.duration, mode))

    return GenerationRequest(
        prompt=args.prompt,
        duration_seconds=args.duration,
        aspect_ratio=args.aspect_ratio,
        resolution=args.resolution,
        mode=mode,
        explicit_provider=explicit_provider,
        reference_images=tuple(ImageRef.from_string(ref) for ref in args.reference_image or ()),
        first_frame=ImageRef.from_string(args.first_frame) if args.first_frame else None,
        last_frame=ImageRef.from_string(args.last_frame) if args.last_frame else None,
        extension_prompts=extension_prompts,
        negative_prompt=args.negative_prompt,
        script=args.script,
        avatar_id=args.avatar_id,
        voice_id=args.voice_id,
    )


async def generate_video(args: argparse.Namespace) -> int:
    """Run one generation inline and print the result."""
    from core.config import get_config
    from services.video_generation import VideoCoordinator, VideoGenerationError
    from services.video_generation.materializer import export_result

    config = get_config()
    request = build_request(args)

    def print_progress(request_id: str, percent: int, message: str):
        print(f"[{percent:3d}%] {message}")

    logger.info(f"Generating {request.duration_seconds}s video ({request.mode.value})")
    logger.info(f"Prompt: {request.prompt[:80]}")

    async with VideoCoordinator(config=config, on_progress=print_progress) as coordinator:
        try:
            result = await coordinator.generate_video(request)
        except VideoGenerationError as e:
            logger.error(f"Generation failed [{e.error_code}]: {e}")
            return 1
        result = export_result(result, config.storage.output_dir, request.request_id[:12])
        coordinator.scratch.cleanup()

    print(json.dumps(result.to_dict(), indent=2))
    if result.is_partial:
        logger.warning(f"Partial result: {result.error}")
    return 0


def submit_job(args: argparse.Namespace) -> int:
    """Create a job record and start its worker process."""
    from core.config import get_config
    from services.video_generation import JobTracker
    from services.video_generation.worker import enqueue_job

    config = get_config()
    request = build_request(args)
    tracker = JobTracker(config.storage.jobs_dir, max_log_lines=config.storage.max_job_log_lines)

    job = enqueue_job(request, tracker, config=config, spawn=not args.no_spawn)
    print(job.id)
    return 0


def show_job(args: argparse.Namespace) -> int:
    from core.config import get_config
    from services.video_generation.job_tracker import JobNotFoundError, JobTracker

    tracker = JobTracker(get_config().storage.jobs_dir)
    try:
        job = tracker.get_job(args.job_id)
    except JobNotFoundError:
        print(f"Job not found: {args.job_id}")
        return 1

    print(job.model_dump_json(indent=2))
    return 0


def show_providers(args: argparse.Namespace) -> int:
    from core.config import get_config
    from services.video_generation import VideoCoordinator

    config = get_config()
    coordinator = VideoCoordinator(config=config)
    print(json.dumps(coordinator.get_provider_info(), indent=2))

    issues = config.validate()
    for issue in issues:
        print(f"  ! {issue}")
    return 0


def add_request_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--prompt", "-p", required=True, help="Video prompt")
    parser.add_argument("--duration", "-d", type=int, default=8, help="Duration in seconds (8-900)")
    parser.add_argument("--aspect-ratio", choices=["16:9", "9:16", "1:1"], default="16:9")
    parser.add_argument("--resolution", choices=["720p", "1080p"], default="720p")
    parser.add_argument("--negative-prompt", help="What to keep out of the video")

    providers = parser.add_mutually_exclusive_group()
    providers.add_argument("--use-veo", action="store_true", help="Force the short-clip provider (Veo)")
    providers.add_argument("--use-longcat", action="store_true", help="Force the long-form provider (LongCat)")
    providers.add_argument("--use-avatar", action="store_true", help="Force the avatar provider (HeyGen)")

    parser.add_argument("--avatar", action="store_true", help="Avatar mode (presenter on screen)")
    parser.add_argument("--avatar-id", help="HeyGen avatar ID")
    parser.add_argument("--voice-id", help="HeyGen voice ID")
    parser.add_argument("--script", help="Spoken script for avatar mode")

    parser.add_argument("--reference-image", action="append", help="Reference image path or URL (up to 3)")
    parser.add_argument("--first-frame", help="First frame image")
    parser.add_argument("--last-frame", help="Last frame image")
    parser.add_argument(
        "--auto-scenes",
        action="store_true",
        help="Generate camera/motion variations for each scene extension",
    )


def main():
    parser = argparse.ArgumentParser(
        description="Creative Video Studio - video generation coordinator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # 30s faceless video: Veo base clip + 4 extensions (36s)
    python main.py generate --prompt "Data dashboard comes alive" --duration 30 --auto-scenes

    # 3 minute video through LongCat
    python main.py generate --prompt "City skyline timelapse" --duration 180

    # Avatar video
    python main.py submit --avatar --prompt "Welcome" --script "Hi, welcome to..." --voice-id abc123
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    gen_parser = subparsers.add_parser("generate", help="Generate a video and wait for it")
    add_request_arguments(gen_parser)

    submit_parser = subparsers.add_parser("submit", help="Queue a video job in a background worker")
    add_request_arguments(submit_parser)
    submit_parser.add_argument("--no-spawn", action="store_true", help="Only create the job record")

    job_parser = subparsers.add_parser("job", help="Show a job record")
    job_parser.add_argument("job_id", help="Job ID")

    subparsers.add_parser("providers", help="Show provider capabilities and availability")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "generate":
        sys.exit(asyncio.run(generate_video(args)))

    elif args.command == "submit":
        sys.exit(submit_job(args))

    elif args.command == "job":
        sys.exit(show_job(args))

    elif args.command == "providers":
        sys.exit(show_providers(args))


if __name__ == "__main__":
    main()
