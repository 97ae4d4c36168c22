# Copyright 2023 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""Setup skillviz."""
import setuptools

base_requires = [
    'absl-py',
    'fsspec',
    'matplotlib',
    'numpy>=2.1.3',
    'pandas>=2.2.3',
    'scipy',
    'scikit-learn',
    'xarray>=2024.11.0',
    'zarr',
]

tests_requires = [
    'absl-py',
    'pytest',
    'pyink',
    # work around https://github.com/zarr-developers/zarr-python/issues/2963
    'numcodecs<0.16.0',
]

gcp_requires = [
    'gcsfs',
]

setuptools.setup(
    name='skillviz',
    version='0.1.0',
    license='Apache 2.0',
    author='Google LLC',
    author_email='noreply@google.com',
    install_requires=base_requires,
    extras_require={
        'tests': tests_requires,
        'gcp': gcp_requires,
    },
    packages=setuptools.find_packages(exclude=['notebooks', 'scripts']),
    python_requires='>=3.10',
)
