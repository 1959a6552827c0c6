from setuptools import find_packages, setup


setup(
    name="lattice_tumor_sim",
    version="1.0",
    description="Stochastic lattice tumor growth simulator",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.22",
        "numba>=0.57",
        "scipy>=1.9",
        "pandas>=1.5",
        "joblib>=1.2",
        "tqdm>=4.64",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": ["tumorsim=tumorsim.__main__:main"],
    },
)
