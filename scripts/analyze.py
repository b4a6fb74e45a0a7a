#!/usr/bin/env python3
"""
Submit an image (file or URL) to a running proxy, wait for the analysis
and print per-face verdicts.

    python scripts/analyze.py --file photo.jpg
    python scripts/analyze.py --url https://example.com/photo.jpg --pdf
    python scripts/analyze.py --session <uuid>
"""
import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import ApiClientError
from core.result_formatter import summarize_results
from services.analysis_workflow import AnalysisWorkflow
from services.proofly_client import ProoflyClient
from services.session_poller import PollOutcome, PollState
import config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Analyze an image for deepfakes")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", type=Path, help="Local image file to upload")
    source.add_argument("--url", help="Public image URL to analyze")
    source.add_argument("--session", help="Existing session UUID to check")
    parser.add_argument("--server", default="http://localhost:8000", help="Proxy server URL")
    parser.add_argument("--pdf", action="store_true", help="Generate a PDF report when done")
    return parser.parse_args(argv)


def print_outcome(outcome: PollOutcome) -> None:
    print(f"Session: {outcome.session_id}")
    print(f"Status:  {outcome.status} (after {outcome.attempts} checks)")
    if outcome.no_faces or not outcome.results:
        print("\nNo faces detected in the image.")
        return

    summary = summarize_results(outcome.results)
    print(f"\nFaces analysed: {summary['total_faces']}")
    for result in outcome.results:
        print(f"\nFace {result.faceIndex}: {result.verdict}")
        print(f"  Real {result.ensembleProbability.real * 100:.2f}%  "
              f"Fake {result.ensembleProbability.fake * 100:.2f}%")
        for model in result.modelProbabilities:
            print(f"    {model.model:<10} real {model.realProbability * 100:6.2f}%")


def on_transition(state: PollState, workflow: AnalysisWorkflow) -> None:
    if state == PollState.UPLOADING:
        print("Uploading...")
    elif state == PollState.PROCESSING:
        print(f"Processing session {workflow.session_id}...")


async def run(args) -> int:
    async with ProoflyClient(server_url=args.server, api_prefix=config.API_PREFIX) as client:
        workflow = AnalysisWorkflow(client, on_transition=on_transition)

        if args.file:
            if not args.file.is_file():
                print(f"Error: file not found: {args.file}")
                return 1
            content_type = mimetypes.guess_type(args.file.name)[0] or config.DEFAULT_IMAGE_CONTENT_TYPE
            outcome = await workflow.submit_file(args.file.name, args.file.read_bytes(), content_type)
        elif args.url:
            outcome = await workflow.submit_url(args.url)
        else:
            outcome = await workflow.check_session(args.session)

        if outcome.state != PollState.RESULTS:
            print(f"\n✗ {outcome.error}")
            return 1

        print_outcome(outcome)

        if args.pdf and outcome.results:
            try:
                report = await client.generate_pdf(outcome.session_id)
            except ApiClientError as e:
                print(f"\n✗ {e}")
                return 1
            print(f"\n✓ {report.get('message')}: {report.get('filename')}")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
