import argparse
import logging
import os
import sys
import traceback

from repcoach.exercise_analysis.config_utils import list_profiles, load_profile
from repcoach.exercise_analysis.profile import ProfileValidationError


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Exercise Coach - rep counting and form feedback")
    parser.add_argument(
        "--exercise",
        type=str,
        default="biceps_curl",
        choices=list_profiles(),
        help="Bundled exercise profile to run"
    )
    parser.add_argument(
        "--profile",
        type=str,
        help="Path to a custom profile JSON file (overrides --exercise)"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device ID"
    )
    source.add_argument(
        "--video",
        type=str,
        help="Path to a video file to analyze instead of the camera"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the bundled exercise profiles and exit"
    )
    parser.add_argument(
        "--no-voice",
        action="store_true",
        help="Disable spoken feedback"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the Exercise Coach."""
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger("PhaseSession").setLevel(args.log_level)

    if args.list:
        for name in list_profiles():
            print(name)
        return 0

    if args.video and not os.path.isfile(args.video):
        print(f"Video file not found: {args.video}")
        return 1

    try:
        profile = load_profile(args.profile or args.exercise)
    except (ProfileValidationError, FileNotFoundError) as e:
        print(f"Error loading profile: {e}")
        return 1

    from repcoach.trainer import ExerciseTrainer

    voice = None
    if not args.no_voice:
        from repcoach.feedback.voice_feedback import VoiceFeedback
        voice = VoiceFeedback()

    try:
        print(f"Initializing Exercise Coach for {profile.display_name}...")
        trainer = ExerciseTrainer(profile, voice=voice)
        print("Trainer created successfully, starting (press 'q' to quit)...")
        summary = trainer.start(args.video if args.video else args.camera)
    except Exception as e:
        print(f"Error running trainer: {e}")
        traceback.print_exc()
        return 1
    finally:
        if voice is not None:
            voice.stop()

    print(f"Session complete: {summary.rep_count} reps of {summary.exercise} in {summary.duration:.1f}s")
    print(f"  safety violations: {summary.safety_violations}")
    print(f"  holds broken early: {summary.early_breaks}")
    print(f"  reps too fast:      {summary.debounced_reps}")
    print(f"  reps withheld:      {summary.withheld_reps}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
