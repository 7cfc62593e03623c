from setuptools import setup, find_packages

# read README:
from os import path
this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.rst'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name="casign",
    version="1.0.0",
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.9",
    scripts=["bin/casign"],
    install_requires=[
        "cryptography >= 42",
        "structlog",
    ],
    extras_require={
        "test": ["pytest"],
    },
    # metadata to display on PyPI
    description="""
        A minimal in-memory certificate authority: signs PEM certificate
        requests with a CA key and certificate, and nothing else.
    """,
    long_description=long_description,
    long_description_content_type='text/x-rst',
    keywords="pki x509 csr certificate authority",
    classifiers=[
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.12",
    ],
)
