from setuptools import setup

setup(
    name='pychainlift',
    version='0.1.0',
    description='Chain-based genomic coordinate liftover between assemblies',
    install_requires=['pandas', 'numpy'],
    extras_require={
        'test': ['pytest'],
        'progress': ['tqdm', 'rich'],
    },
    packages=['pychainlift'],
    python_requires='>=3.10',
    zip_safe=False
)
