"""Setup configuration for eqtlscan package"""

from setuptools import setup, find_packages

setup(
    name="eqtlscan",
    version="0.1.0",
    author="eqtlscan Development Team",
    description="Expression QTL scans with nested linear-model F tests, Bonferroni calling and Manhattan/Q-Q reporting",
    long_description=open("README.md").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["eqtlscan", "eqtlscan.*"]),
    install_requires=[
        "numpy>=1.19.0",
        "scipy>=1.6.0",
        "pandas>=1.2.0",
        "matplotlib>=3.3.0",
        "seaborn>=0.11.0",
    ],
    extras_require={
        # Reference OLS fits used by the test-suite
        "test": [
            "pytest>=6.0",
            "statsmodels>=0.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "eqtlscan=eqtlscan.cli.main:main",
        ],
    },
    python_requires=">=3.7",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.7",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
)
