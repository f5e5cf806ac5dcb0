"""
Run lab documents through the analysis pipeline locally and print the results.

Usage:
    python scripts/run_pipeline.py report1.txt scan.png docs.json
    python scripts/run_pipeline.py --gender female report.txt

.txt files are read as extracted text, .png/.jpg/.jpeg files are sent as
page images, and .json files hold one document object or a list of them
with the same fields as the /api/v1/analyze request.
"""

import asyncio
import base64
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from workers.extraction.errors import LabExtractionError  # noqa: E402
from workers.extraction.pipeline import LabAnalysisPipeline  # noqa: E402
from workers.extraction.schemas import RawDocument  # noqa: E402

logger = logging.getLogger("run_pipeline")

IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def load_documents(path: Path):
    suffix = path.suffix.lower()

    if suffix == ".json":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        items = data if isinstance(data, list) else [data]
        return [RawDocument(**item) for item in items]

    if suffix in IMAGE_MIME_TYPES:
        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        return [RawDocument(
            file_name=path.name,
            page_images=[encoded],
            is_image=True,
            mime_type=IMAGE_MIME_TYPES[suffix],
        )]

    return [RawDocument(file_name=path.name, extracted_text=path.read_text(encoding="utf-8"))]


def print_report(result):
    print(f"\nPatient: {result.patient_info.name or 'unknown'} ({result.gender} ranges)")
    for discrepancy in result.patient_discrepancies:
        print(f"  ! {discrepancy}")

    print(f"\n{'Biomarker':<28} {'Value':>10} {'Unit':<12} {'Optimal':<30} Status")
    for row in result.results:
        if row.measured:
            print(f"{row.biomarker_name:<28} {row.his_value:>10} {row.unit:<12} {row.optimal_range:<30} {row.status}")

    summary = result.summary
    print(
        f"\n{summary.measured_biomarkers}/{summary.total_biomarkers} measured: "
        f"{summary.in_range_count} in range, {summary.out_of_range_count} out of range, "
        f"{summary.missing_biomarkers} missing"
    )

    for name, reason in result.skipped:
        print(f"Skipped {name}: {reason}")
    for failure in result.failures:
        print(f"Failed {failure['file_name']}: {failure['error']}")
    for unmatched in result.unmatched:
        hint = f" (did you mean {unmatched.suggestion}?)" if unmatched.suggestion else ""
        print(f"Unmatched {unmatched.name} = {unmatched.value} {unmatched.unit}{hint}")


async def run(paths, gender=None):
    documents = []
    for path in paths:
        documents.extend(load_documents(Path(path)))

    pipeline = LabAnalysisPipeline()
    result = await pipeline.analyze(documents, gender=gender)
    print_report(result)

    output_dir = Path("test_results")
    output_dir.mkdir(exist_ok=True)
    output_path = output_dir / "analysis.json"
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(asdict(result), f, indent=2)
    print(f"\nFull results saved in: {output_path.resolve()}")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = sys.argv[1:]
    gender = None
    if len(args) >= 2 and args[0] == "--gender":
        gender, args = args[1], args[2:]

    if not args:
        print(__doc__)
        sys.exit(1)

    try:
        asyncio.run(run(args, gender))
    except LabExtractionError as e:
        logger.error(f"Analysis failed: {e}")
        sys.exit(1)
