# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""
SDSampler build configuration.

Pure-Python package; NumPy, SciPy, tqdm, and PyYAML are the only
runtime dependencies.

Build
-----
    pip install -e .                          # editable install
    pip install -e .[dev]                     # with test tooling
    python -m build --wheel                   # wheel
"""
import os

from setuptools import setup

# ── Package metadata ──
try:
    with open(os.path.join(os.path.dirname(__file__), 'README.md'), 'r',
              encoding='utf-8') as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = ''

setup(
    name='sdsampler',
    version='0.1.0',
    author='Pictofeed, LLC',
    author_email='engineering@pictofeed.io',
    description=(
        'Stable Diffusion sampling core — schedulers, seeded latent noise, '
        'and classifier-free guidance over external inference engines'
    ),
    long_description=long_description,
    long_description_content_type='text/markdown',
    url='https://github.com/pictofeed/sdsampler',
    license='Proprietary',

    packages=[
        'sdsampler',
        'sdsampler.diffusion',
        'sdsampler.utils',
    ],

    python_requires='>=3.10',
    install_requires=[
        'numpy>=1.24',
        'scipy>=1.10',
        'tqdm>=4.64',
        'PyYAML>=6.0',
    ],
    extras_require={
        'dev': [
            'pytest>=7.0',
        ],
    },

    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Science/Research',
        'License :: Other/Proprietary License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Scientific/Engineering :: Artificial Intelligence',
    ],
    zip_safe=False,
)
