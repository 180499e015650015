from setuptools import find_packages, setup

setup(
    name="licensekeeper",
    version="0.1.0",
    packages=find_packages(include=["licensekeeper", "licensekeeper.*"]),
    include_package_data=True,
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "requests",
        "click",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "licensekeeper=licensekeeper.cli:cli",
        ],
    },
)
