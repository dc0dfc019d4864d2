from setuptools import setup, find_packages

setup(
    name="harvest_trader",
    version="1.0.0",
    packages=find_packages(include=['harvest_trader', 'harvest_trader.*']),
    python_requires=">=3.8",
    install_requires=[
        "pandas",
        "numpy",
        "scipy"
    ],
    extras_require={
        "tests": [
            "pytest"
        ]
    }
)
