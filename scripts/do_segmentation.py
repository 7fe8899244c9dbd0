import argparse
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed

from loguru import logger
from tqdm import tqdm

# Add the project root directory to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(project_root)
sys.path.append(os.path.join(project_root, 'src'))

from configs.default_config import CONCURRENCY_CONFIG, MASKS_DIR, TRADITIONAL_CONFIG
from otsu_triclass import Algorithm, SegmentationError, TraditionalSegmenterFactory
from otsu_triclass.utils import SegmentationDataLoader, mask_metrics, save_mask


def parse_args():
    parser = argparse.ArgumentParser(description='Adaptive binary segmentation of a directory of images')
    parser.add_argument('data_dir', type=str,
                        help='Directory containing input images')
    parser.add_argument('--result_dir', type=str, default=MASKS_DIR,
                        help='Directory to save segmentation masks')
    parser.add_argument('--mask_dir', type=str, default=None,
                        help='Optional directory of ground truth masks with matching names')
    parser.add_argument('--method', type=str, default=None, choices=[a.key for a in Algorithm],
                        help='Run a single method instead of every enabled one')
    parser.add_argument('--workers', type=int, default=CONCURRENCY_CONFIG['max_workers'],
                        help='Number of images processed in parallel')
    parser.add_argument('--quality', type=str, choices=['fast', 'best'],
                        help='2D Otsu threshold search resolution')
    parser.add_argument('--window_size', type=int,
                        help='2D Otsu neighborhood window size')
    parser.add_argument('--max_iterations', type=int,
                        help='Triclass iteration limit')
    parser.add_argument('--no_cleanup', action='store_true',
                        help='Disable morphological cleanup of the masks')
    parser.add_argument('--verbose', action='store_true',
                        help='Show per-stage debug logging')
    args = parser.parse_args()
    os.makedirs(args.result_dir, exist_ok=True)
    return args


def build_config(args):
    """Copy of the default configuration with command line overrides applied."""
    config = {key: dict(values) for key, values in TRADITIONAL_CONFIG.items()}
    if args.quality is not None:
        config['otsu_2d']['quality'] = args.quality
    if args.window_size is not None:
        config['otsu_2d']['window_size'] = args.window_size
    if args.max_iterations is not None:
        config['triclass']['max_iterations'] = args.max_iterations
    if args.no_cleanup:
        for values in config.values():
            values['result_cleanup'] = False
    return config


def process_image(idx, data_loader, factory, result_dir, method=None):
    """
    Segment one image and write its masks.

    Returns:
        dict: Image name, written paths and, with ground truth, mask metrics per method.
    """
    sample = data_loader[idx]
    results = factory.segment(sample.image, method)
    if method is not None:
        results = {method: results}

    summary = {'name': sample.name, 'paths': {}, 'metrics': {}}
    for algorithm, mask in results.items():
        summary['paths'][algorithm] = save_mask(mask, result_dir, sample.name, algorithm)
        if sample.mask is not None:
            summary['metrics'][algorithm] = mask_metrics(mask, sample.mask)
    return summary


def main(args):
    if not args.verbose:
        logger.remove()
        logger.add(sys.stderr, level='INFO')

    config = build_config(args)
    factory = TraditionalSegmenterFactory(config, max_workers=args.workers)
    data_loader = SegmentationDataLoader(image_dir=args.data_dir, mask_dir=args.mask_dir)

    num_images = len(data_loader)
    logger.info(f"Processing {num_images} images with methods {factory.available_methods}")

    summaries = []
    failures = 0
    with ThreadPoolExecutor(max_workers=max(1, args.workers)) as executor:
        futures = {
            executor.submit(process_image, idx, data_loader, factory, args.result_dir, args.method): idx
            for idx in range(num_images)
        }
        for future in tqdm(as_completed(futures), total=num_images):
            idx = futures[future]
            try:
                summaries.append(future.result())
            except (SegmentationError, ValueError, IOError) as e:
                failures += 1
                logger.error(f"Failed to segment {data_loader.image_files[idx]}: {e}")

    for summary in sorted(summaries, key=lambda s: s['name']):
        for algorithm, scores in summary['metrics'].items():
            logger.info(
                f"{summary['name']} [{algorithm}]: "
                + ", ".join(f"{key} {value:.3f}" for key, value in scores.items())
            )

    logger.info(f"Wrote masks for {len(summaries)} images to {args.result_dir} ({failures} failed)")


if __name__ == "__main__":
    args = parse_args()
    main(args)
