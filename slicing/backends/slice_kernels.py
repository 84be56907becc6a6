"""
GPU Slice Kernels

CUDA source for the slice extraction kernel, compiled at runtime
with cupy.RawKernel.

The kernel samples the volume texture uploaded by GPUSliceExtractor.
Each voxel is stored as two 8-bit channels (low byte, high byte) read
as normalized floats, so linear filtering of each channel recombines
into a linearly filtered 16-bit value.
"""

# Name of the kernel entry point
SLICE_KERNEL_NAME = "extract_slice"

# Number of uint32 fields in SliceParams
SLICE_PARAMS_FIELDS = 8

VOLUME_SLICE_KERNEL = r"""
struct SliceParams {
    unsigned int slice_index;
    unsigned int orientation;
    unsigned int output_width;
    unsigned int output_height;
    unsigned int volume_width;
    unsigned int volume_height;
    unsigned int volume_depth;
    unsigned int _padding;
};

// Half-pixel-center mapping of target pixel t onto the source axis
__device__ float source_coordinate(unsigned int t, unsigned int target, unsigned int source)
{
    float s = ((float)t + 0.5f) / (float)target * (float)source - 0.5f;
    return fminf(fmaxf(s, 0.0f), (float)(source - 1));
}

extern "C" __global__
void extract_slice(
    cudaTextureObject_t volume,
    unsigned int* output,
    const SliceParams* params
)
{
    const SliceParams p = *params;
    unsigned int x = blockIdx.x * blockDim.x + threadIdx.x;
    unsigned int y = blockIdx.y * blockDim.y + threadIdx.y;
    if (x >= p.output_width || y >= p.output_height) {
        return;
    }

    // Voxel coordinates along X, Y, Z
    float u, v, w;
    float fixed = (float)p.slice_index;

    switch (p.orientation) {
    case 0:  // axial: rows Y, cols X
        u = source_coordinate(x, p.output_width, p.volume_width);
        v = source_coordinate(y, p.output_height, p.volume_height);
        w = fixed;
        break;
    case 1:  // coronal: rows Z, cols X
        u = source_coordinate(x, p.output_width, p.volume_width);
        v = fixed;
        w = source_coordinate(y, p.output_height, p.volume_depth);
        break;
    default:  // sagittal: rows Z, cols Y
        u = fixed;
        v = source_coordinate(x, p.output_width, p.volume_height);
        w = source_coordinate(y, p.output_height, p.volume_depth);
        break;
    }

    // Texel centers sit at +0.5 in unnormalized coordinates
    float2 texel = tex3D<float2>(volume, u + 0.5f, v + 0.5f, w + 0.5f);
    float value = texel.x * 255.0f + texel.y * 65280.0f;
    float scaled = fminf(fmaxf(value / 65535.0f * 255.0f, 0.0f), 255.0f);

    output[y * p.output_width + x] = (unsigned int)rintf(scaled);
}
"""
