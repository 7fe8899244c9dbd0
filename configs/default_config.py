"""
Default configuration for adaptive binary segmentation.
"""

import os

# Data paths
DATA_ROOT = 'sample_data'
RAW_DATA_DIR = os.path.join(DATA_ROOT, 'raw')
ANNOTATIONS_DIR = os.path.join(DATA_ROOT, 'annotations')

# Results paths
RESULTS_DIR = 'results'
MASKS_DIR = os.path.join(RESULTS_DIR, 'masks')
VISUALIZATION_DIR = os.path.join(RESULTS_DIR, 'visualizations')

# Traditional segmentation parameters
TRADITIONAL_CONFIG = {
    'otsu_2d': {
        'enable': True,
        'window_size': 7,  # Neighborhood side length, odd, 3-21
        'histogram_bins': 0,  # 0 picks the bin count from range, noise and size
        'pixel_weight_factor': 0.5,  # Share of the pixel itself in the neighborhood feature
        'smoothing_sigma': 1.0,  # Gaussian preprocessing and histogram smoothing
        'neighbourhood_metric': 'mean',  # Options: 'mean', 'median', 'gaussian'
        'quality': 'fast',  # 'fast' searches half bins, 'best' tenths of a bin
        'use_log_histogram': False,
        'normalize_histogram': False,
        'gaussian_preprocessing': True,
        'noise_robustness': True,  # Median / Gaussian blend before thresholding
        'use_clahe': False,
        'clahe_clip_limit': 3.0,
        'clahe_tile_size': 8,
        'guided_filtering': False,
        'guided_radius': 4,
        'guided_epsilon': 0.05,
        'result_cleanup': False,
    },
    'triclass': {
        'enable': True,
        'initial_threshold_method': 'otsu',  # Options: 'otsu', 'mean', 'median', 'triangle'
        'histogram_bins': 0,  # 0 picks the bin count per region
        'max_iterations': 8,
        'convergence_precision': 1.0,  # Threshold change (0-255) counted as stable
        'minimum_tbd_fraction': 0.01,  # Stop once fewer undecided pixels remain
        'class_separation': 0.5,  # Relative half-width of the undecided band
        'preprocessing': True,
        'guided_filtering': True,
        'guided_radius': 6,
        'guided_epsilon': 0.15,
        'noise_robustness': True,  # Non-local means denoising
        'result_cleanup': True,
    },
}

# Concurrency
CONCURRENCY_CONFIG = {
    'max_workers': os.cpu_count() or 1,
}

# Evaluation parameters
EVALUATION_CONFIG = {
    'metrics': ['dice', 'iou', 'precision', 'recall'],
    'image_metrics': ['psnr', 'ssim'],
    'save_visualizations': True,
}
