# kptools

Tools for timing parallel kernels and regions, and for reporting where an
application spends its time and memory.

The package holds two kinds of profilers and two command-line readers for the
timing data files.

## Simple kernel timer

`kptools.kernel_timer.KernelTimer` counts calls and accumulates the time spent
in every named `parallel_for`, `parallel_reduce` and `parallel_scan` kernel and
in every named region:

```python
from kptools.kernel_timer import KernelTimer

timer = KernelTimer(".")
timer.init_library(0, 20211015)

kernel_id = timer.begin_parallel_for("axpy", 0)
# ... run the kernel ...
timer.end_parallel_for(kernel_id)

timer.push_region("solve")
# ... kernels inside the region ...
timer.pop_region()

path = timer.finalize_library()
```

`begin_parallel_*` raises `ValueError` for an empty kernel name. Popping a
region when none is open writes a warning to standard error and changes
nothing.

`finalize_library()` writes a binary data file named `<hostname>-<pid>.dat`
into the output directory (the working directory when none was given) and
returns its path. The file holds the total run time followed by one record
per kernel or region. The records can be read back with
`kptools.shared.read_data_file`, and single records with
`KernelPerformanceInfo.read_from` / `write_to` in `kptools.kernel_info`.

`kptools.kernel_timer_json.KernelTimerJSON` records kernels the same way (it
has no region calls) and on `finalize_library()` writes a JSON summary,
`<hostname>-<pid>-<rank>.json`, where the rank is taken from the
`OMPI_COMM_WORLD_RANK` environment variable (0 when unset). `render(total_time,
mpi_rank)` returns the same text without writing a file.

## Reading the data files

Summarise one or more `.dat` files as text. Entries with the same name are
merged across files and listed by total time, longest first:

```
kp-reader host-1234.dat host-5678.dat
kp-reader --delimiter , --fixed-width 1 host-1234.dat
```

`--delimiter` takes the first character of its value as the column separator;
`--fixed-width` with a non-zero number switches to padded columns. The report
lists regions and kernels separately, with total time, call count, average
time per call, and the share of kernel time and of program time, then a
summary of totals.

Turn the same files into a JSON document on standard output:

```
kp-json-writer host-1234.dat > timings.json
```

Both commands print a usage message and exit with status 255 when given no
files, and exit with status 1 when a file cannot be read.

From Python, `kptools.shared.load_data_files` merges data files, and
`kptools.reader.format_report` and `kptools.json_writer.render_json` produce
the same output as the commands.

## Space-time stack

`kptools.space_time_stack.SpaceTimeStack` keeps a tree of nested regions,
kernels and deep copies, and tracks memory allocations per memory space
(host, CUDA, HIP, SYCL, OpenMPTarget), remembering the allocations present at
each space's high-water mark.

```python
from kptools.space_time_stack import SpaceTimeStack
from kptools.stack import StackKind

stack = SpaceTimeStack(0.1, None)
stack.push_region("setup")
stack.allocate("Host", "matrix", 0x1000, 4096)
kernel_id = stack.begin_kernel("fill", StackKind.FOR)
stack.end_kernel(kernel_id)
stack.pop_region()
print(stack.report())
```

Spaces may be given as `kptools.stack.Space` members or as handle names such
as `"Host"` or `"Cuda"`. Ending a kernel with the wrong id, or reporting while
a frame is still open, raises `RuntimeError`.

`report()` shows a top-down time tree, a bottom-up (inverted) time tree, the
memory high-water mark of each space, and the peak resident memory of the
process. Nodes taking less than the threshold percentage of the total time
are left out; a threshold of 0 shows everything. `report_json()` gives the
top-down tree as JSON instead. `finalize()` writes the text report to
standard output, or, when `KOKKOS_PROFILE_EXPORT_JSON` is set, writes the JSON
tree to `noname.json` in the working directory; it returns what it wrote.

`kptools.space_time_stack.parse_args` reads a threshold from a tool argument
list, and `help_text` gives its usage message.

## What the package does not do

The profilers are plain Python objects: nothing attaches them to a running
application, so the application calls the begin/end, region and allocation
methods itself. Results are per process; timings and allocations are not
combined across MPI ranks.

## Tests

```
pip install -e .[test]
pytest
```