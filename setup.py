"""Setup configuration for CatchTheBus."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="catchthebus",
    version="0.1.0",
    description="Live GTFS-Realtime arrivals and leave-by advice for a single transit stop",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    ],
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.25.0",
        "pandas>=1.3.0",
        "gtfs-realtime-bindings>=1.0.0",
        "protobuf>=3.17.0",
        "flask>=2.2",
        "flask-cors>=3.0",
    ],
    extras_require={
        "dev": ["pytest>=6.0", "black", "flake8"],
        "test": ["pytest>=6.0"],
    },
    entry_points={
        "console_scripts": [
            "catchthebus=catchthebus.cli:main",
        ],
    },
)
