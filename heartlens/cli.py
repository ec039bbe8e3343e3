"""
CLI interface for HeartLens
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import List, Optional

from . import config
from .charts import emotion_comparison_chart
from .screenshot_analysis import analyze_screenshots
from .text_analysis import analyze_text
from .validation import validate_analysis_result

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _emit(report: dict, output_file: Optional[str] = None):
    if output_file:
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        logger.info(f"Report saved to {output_file}")
    else:
        print(json.dumps(report, indent=2, ensure_ascii=False))


def analyze_images(
    paths: List[str],
    names: Optional[List[str]] = None,
    output_file: Optional[str] = None,
    chart_file: Optional[str] = None,
) -> dict:
    """
    Analyze chat screenshots.

    Args:
        paths: Screenshot image files
        names: Optional [name_a, name_b]
        output_file: Optional output JSON file
        chart_file: Optional PNG path for the emotion comparison chart

    Returns:
        AnalysisResult dict
    """
    logger.info(f"Analyzing {len(paths)} screenshots")

    valid, msg = config.validate_config()
    if not valid:
        logger.warning(f"Configuration: {msg}")

    images = [(Path(p).name, Path(p).read_bytes()) for p in paths]
    participants = {"user_a": names[0], "user_b": names[1]} if names else None
    result = analyze_screenshots(images, participants)

    if chart_file:
        Path(chart_file).write_bytes(emotion_comparison_chart(result))
        logger.info(f"Chart saved to {chart_file}")

    _emit(result, output_file)
    return result


def analyze_transcript(path: str, output_file: Optional[str] = None) -> dict:
    """Score an already-transcribed chat text file."""
    text = Path(path).read_text(encoding="utf-8")
    analysis = analyze_text(text, confidence=1.0)
    _emit(analysis, output_file)
    return analysis


def main(argv: Optional[List[str]] = None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="HeartLens - Chat Screenshot Relationship Analyzer"
    )

    parser.add_argument(
        "command",
        choices=["analyze", "text", "validate"],
        help="Command to run"
    )

    parser.add_argument(
        "paths",
        nargs="+",
        help="Screenshot images (analyze), a transcript (text) or a result JSON (validate)"
    )

    parser.add_argument(
        "--names",
        nargs=2,
        metavar=("NAME_A", "NAME_B"),
        help="Participant names"
    )

    parser.add_argument(
        "-o", "--output",
        dest="output_file",
        help="Output JSON file path"
    )

    parser.add_argument(
        "--chart",
        dest="chart_file",
        help="Write the emotion comparison chart to this PNG file"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging"
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "validate":
        try:
            with open(args.paths[0], "r", encoding="utf-8") as f:
                result = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Valid: False - could not read {args.paths[0]}: {e}")
            sys.exit(1)
        valid, msg = validate_analysis_result(result)
        print(f"Valid: {valid} - {msg}")
        sys.exit(0 if valid else 1)

    elif args.command == "text":
        try:
            analysis = analyze_transcript(args.paths[0], args.output_file)
            logger.info(f"Dominant emotion: {analysis['sentiment']['dominant_emotion']}")
        except Exception as e:
            logger.error(f"Analysis failed: {e}", exc_info=True)
            sys.exit(1)

    elif args.command == "analyze":
        try:
            result = analyze_images(args.paths, args.names, args.output_file, args.chart_file)
            logger.info("Analysis complete")
            logger.info(f"Relationship Health: {result['relationship_health']}/100")
        except Exception as e:
            logger.error(f"Analysis failed: {e}", exc_info=True)
            sys.exit(1)


if __name__ == "__main__":
    main()
