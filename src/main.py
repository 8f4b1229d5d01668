import argparse
import logging
import sys

from repcoach.exercise_analysis.base_analyzer import UserLevel
from repcoach.exercise_analysis.config_utils import ConfigError
from repcoach.exercise_analysis.rep_analyzer import EXERCISE_ANALYZER_REGISTRY
from repcoach.pose_detection.base_detector import PoseEstimatorUnavailable

logger = logging.getLogger("repcoach")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rep Coach - rep counting and form feedback")
    parser.add_argument(
        "--exercise",
        type=str,
        default="tricep_pushdown",
        choices=sorted(EXERCISE_ANALYZER_REGISTRY),
        help="Type of exercise to analyze"
    )
    parser.add_argument(
        "--user_level",
        type=str,
        default="beginner",
        choices=[level.value for level in UserLevel],
        help="User level (beginner/intermediate/advanced)"
    )
    parser.add_argument('--mode', type=str, choices=['camera', 'video'], default='camera', help='Run mode: camera (default) or video')
    parser.add_argument('--camera', type=int, default=0, help='Camera device ID')
    parser.add_argument('--video', type=str, help='Path to the video file to analyze (required if mode=video)')
    parser.add_argument('--output-dir', type=str, default='results', help='Directory for exported results')
    parser.add_argument('--history-file', type=str, default='session_history.json', help='Session history JSON file')
    parser.add_argument('--no-voice', action='store_true', help='Disable spoken feedback')
    parser.add_argument('--no-display', action='store_true', help='Run without the preview window')
    parser.add_argument('--log-level', type=str, default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')
    return parser


def main(argv=None) -> int:
    """Main entry point for Rep Coach."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logger.setLevel(getattr(logging, args.log_level))

    if args.mode == 'video' and not args.video:
        parser.error("--video is required when mode is 'video'")

    from repcoach.trainer import Trainer

    try:
        logger.info("Initializing Rep Coach...")
        trainer = Trainer(
            exercise_type=args.exercise,
            user_level=UserLevel(args.user_level),
            output_dir=args.output_dir,
            history_file=args.history_file,
            voice=not args.no_voice,
            display=not args.no_display,
        )
    except PoseEstimatorUnavailable as e:
        logger.error(f"Pose estimator unavailable: {e}")
        return 1
    except ConfigError as e:
        logger.error(f"Invalid exercise configuration: {e}")
        return 1

    try:
        if args.mode == 'video':
            trainer.run_video(args.video)
        else:
            trainer.start(camera_id=args.camera)
    except (RuntimeError, FileNotFoundError) as e:
        logger.error(f"Error running trainer: {e}")
        return 1
    if not trainer.results_persisted:
        logger.error("Session results could not be saved")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
