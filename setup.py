"""setup.py for npzcodec, a pure-Python reader/writer for NumPy .npy and .npz files.

Installs the ``npzcodec`` package and the ``npzcodec`` console command.
Test dependencies are in the ``test`` extra:

    pip install -e .[test]
"""

from setuptools import setup


setup(
    name="npzcodec",
    version="0.1.0",
    description="Read, write and append NumPy .npy files and .npz archives",
    packages=["npzcodec", "npzcodec.storage"],
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "rich",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "npzcodec=npzcodec.__main__:main",
        ],
    },
)
