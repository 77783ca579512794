from setuptools import setup, find_packages

setup(
    name="curve_calibration_engine",
    version="0.1.0",
    description="Multi-curve calibration engine with calibration Jacobians",
    packages=find_packages(include=["curve_calibration_engine", "curve_calibration_engine.*"]),
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
)
