"""Packaging information for tsfs."""

import sys

import setuptools

from tsfs.constants import VERSION

if sys.version_info[:3] < (3, 8, 0):
    print("tsfs requires Python 3.8 to run.")
    sys.exit(1)

install_requires = [
    "asyncssh>=2.13.0",
    "fasteners>=0.15",
]

extras_require = {
    "dev": [
        "flake8>=3.7.9",
        "flake8-docstrings>=1.5.0",
        "flake8-import-order>=0.18.1",
        "black>=19.10b0",
        "mypy>=0.770",
        "pytest>=6.0.0",
        "pytest-asyncio>=0.17.0",
        "pytest-cov>=2.8.1",
    ]
}


def _long_description():
    with open("README.md") as f:
        return f.read()


setuptools.setup(
    name="tsfs",
    version=VERSION,
    description="Virtual file system for the machines in a Tailscale tailnet.",
    long_description=_long_description(),
    long_description_content_type="text/markdown",
    license="Apache",
    packages=setuptools.find_packages(),
    entry_points={"console_scripts": ["tsfs = tsfs.__main__:main"]},
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Framework :: AsyncIO",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: POSIX",
        "Topic :: System :: Filesystems",
    ],
    python_requires=">=3.8",
)
