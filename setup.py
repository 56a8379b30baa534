# setup.py
from setuptools import setup, find_packages

setup(
    name="boltzmann-brain",
    version="0.1.0",
    description="Well-foundedness checking, tuning and Boltzmann sampling of combinatorial systems",
    package_dir={"": "src"},
    packages=find_packages(where="src"),      # boltzmann_brain and its subpackages
    install_requires=[
        "numpy>=1.22",
        "scipy>=1.9",
        "pandas>=2.0",
        "networkx>=3.0",
        "rich>=13.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["boltzmann-brain=boltzmann_brain.cli:main"],
    },
    python_requires=">=3.8",
    include_package_data=True,
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
